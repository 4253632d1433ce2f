from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path

from corsheaders.conf import conf as cors_conf
from django.conf import settings
from django.http import FileResponse, HttpResponse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics
from rest_framework.exceptions import MethodNotAllowed, NotFound, PermissionDenied, ValidationError
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from users.permissions import IsOwner, IsOwnerOrAdmin

from .filters import VerificationRecordFilter
from .models import CustomField, VerificationRecord
from .payload_policy import mask_aadhaar_number
from .providers import ProviderError
from .repository import ListingQuery, RecordRepository
from .responses import fail, ok, server_error
from .serializers import (
    CustomFieldKeySerializer,
    DynamicFieldsUpdateSerializer,
    SelfieMetadataSerializer,
    SelfieUploadSerializer,
    SendOtpSerializer,
    VerificationRecordSerializer,
    VerifyOtpSerializer,
)
from .services import REJECTED_MESSAGE, VERIFIED_MESSAGE, AuthorizationContext, attach_selfie, send_otp, verify_otp


logger = logging.getLogger(__name__)


def get_record_or_404(record_id) -> VerificationRecord:
    try:
        pk = uuid.UUID(str(record_id))
    except ValueError:
        raise ValidationError({"id": "Invalid record ID"})
    record = VerificationRecord.objects.select_related("user").filter(pk=pk).first()
    if record is None:
        raise NotFound("Verification record not found")
    return record


class OtpFlowMixin:
    """Send/verify handlers shared by the authenticated and QR endpoints."""

    send_serializer_class = SendOtpSerializer
    verify_serializer_class = VerifyOtpSerializer

    def _provider_failure(self, exc: ProviderError, aadhaar_number: str):
        logger.exception(
            "verification.provider_failed",
            extra={"aadhaar": mask_aadhaar_number(aadhaar_number), "upstream_status": exc.status_code},
        )
        return fail(exc.message, error=exc.message, http_status=500)

    def handle_send_otp(self, request, context: AuthorizationContext, *, extra: dict | None = None):
        serializer = self.send_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        attrs = serializer.validated_data

        try:
            data = send_otp(
                context,
                aadhaar_number=attrs["aadhaar_number"],
                location=attrs.get("location") or "",
                dynamic_fields=attrs.get("dynamic_fields", []),
            )
        except ProviderError as exc:
            return self._provider_failure(exc, attrs["aadhaar_number"])
        except Exception as exc:
            return server_error("Failed to send OTP", exc)

        data.update(extra or {})
        return ok(data, message="OTP sent successfully")

    def handle_verify_otp(self, request, context: AuthorizationContext, *, extra: dict | None = None):
        serializer = self.verify_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        attrs = serializer.validated_data

        repository = RecordRepository()
        try:
            record, verified = verify_otp(
                context,
                request=request,
                aadhaar_number=attrs["aadhaar_number"],
                otp=attrs["otp"],
                transaction_id=attrs["transaction_id"],
                dynamic_fields=attrs.get("dynamic_fields", []),
                repository=repository,
            )
            data = VerificationRecordSerializer(repository.decrypt(record)).data
        except ProviderError as exc:
            return self._provider_failure(exc, attrs["aadhaar_number"])
        except Exception as exc:
            return server_error("Failed to verify OTP", exc)

        data.update(extra or {})
        return ok(data, message=VERIFIED_MESSAGE if verified else REJECTED_MESSAGE, success=verified)


class DynamicFieldKeysView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, format=None):
        definitions = CustomField.active_for_verification()
        return ok(CustomFieldKeySerializer(definitions, many=True).data)


class RecordListView(generics.GenericAPIView):
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_class = VerificationRecordFilter

    def get_queryset(self):
        return VerificationRecord.objects.filter(user=self.request.user)

    def get(self, request, format=None):
        query = ListingQuery.from_params(request.query_params)
        queryset = self.filter_queryset(self.get_queryset())

        try:
            page = RecordRepository().list_page(queryset, query)
            definitions = list(CustomField.active_for_verification())
            data = VerificationRecordSerializer(
                page.items, many=True, context={"field_definitions": definitions}
            ).data
        except Exception as exc:
            return server_error("Failed to fetch verification records", exc)

        return ok(data, pagination=page.pagination())


class RecordDetailView(APIView):
    """Dynamic-field editing. The path only answers PATCH."""

    permission_classes = [IsAuthenticated, IsOwner]

    @property
    def default_response_headers(self):
        headers = super().default_response_headers
        headers["Allow"] = "PATCH"
        return headers

    def initial(self, request, *args, **kwargs):
        # Rejected before authentication so the answer never depends on the caller.
        if request.method not in ("PATCH", "OPTIONS"):
            raise MethodNotAllowed(request.method, detail="Use PATCH to update dynamic fields for this record")
        super().initial(request, *args, **kwargs)

    def patch(self, request, record_id: str, format=None):
        record = get_record_or_404(record_id)
        self.check_object_permissions(request, record)

        serializer = DynamicFieldsUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        repository = RecordRepository()
        try:
            repository.replace_dynamic_fields(record, serializer.validated_data["dynamic_fields"])
            data = VerificationRecordSerializer(repository.decrypt(record)).data
        except Exception as exc:
            return server_error("Failed to update dynamic fields", exc)

        return ok(data, message="Dynamic fields updated")


class VerifySingleView(OtpFlowMixin, APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, format=None):
        return self.handle_send_otp(request, AuthorizationContext.for_session(request.user))


class VerifyOtpView(OtpFlowMixin, APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, format=None):
        return self.handle_verify_otp(request, AuthorizationContext.for_session(request.user))


def _allowed_origin(request) -> str:
    origin = str(request.headers.get("Origin") or "").strip()
    if not origin:
        return ""
    if cors_conf.CORS_ALLOW_ALL_ORIGINS or origin in cors_conf.CORS_ALLOWED_ORIGINS:
        return origin
    return ""


def _with_embedding_headers(response, request):
    origin = _allowed_origin(request)
    if origin:
        response["Access-Control-Allow-Origin"] = origin
        response["Access-Control-Allow-Credentials"] = "true"
    response["Cross-Origin-Resource-Policy"] = "cross-origin"
    response["Cross-Origin-Embedder-Policy"] = "unsafe-none"
    response["Cache-Control"] = "private, max-age=3600"
    return response


def legacy_selfie_file(record: VerificationRecord) -> Path | None:
    """Resolves a pre-blob selfie on disk, refusing paths outside SELFIE_LEGACY_ROOT."""

    if not record.selfie_path:
        return None
    root = Path(settings.SELFIE_LEGACY_ROOT).resolve()
    candidate = (root / record.selfie_path.lstrip("/\\")).resolve()
    if root != candidate and root not in candidate.parents:
        logger.warning("verification.selfie.path_rejected", extra={"record_id": str(record.pk)})
        return None
    return candidate if candidate.is_file() else None


class RecordSelfieView(APIView):
    parser_classes = [MultiPartParser, FormParser]

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAuthenticated(), IsOwner()]
        return [IsAuthenticated(), IsOwnerOrAdmin()]

    def get(self, request, record_id: str, format=None):
        record = get_record_or_404(record_id)
        self.check_object_permissions(request, record)

        if record.selfie_data:
            response = HttpResponse(bytes(record.selfie_data), content_type=record.selfie_mimetype or "image/jpeg")
            response["Content-Length"] = str(len(response.content))
            response["Content-Disposition"] = f'inline; filename="{record.selfie_filename or "selfie"}"'
            return _with_embedding_headers(response, request)

        path = legacy_selfie_file(record)
        if path is not None:
            content_type = record.selfie_mimetype or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            response = FileResponse(path.open("rb"), content_type=content_type)
            response["Content-Disposition"] = f'inline; filename="{path.name}"'
            return _with_embedding_headers(response, request)

        raise NotFound("Selfie not found for this record")

    def post(self, request, record_id: str, format=None):
        record = get_record_or_404(record_id)
        self.check_object_permissions(request, record)
        if not request.user.can_upload_selfies():
            raise PermissionDenied("Selfie upload module is not enabled for your account")

        serializer = SelfieUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            metadata = attach_selfie(record, serializer.validated_data["selfie"], request=request, actor=request.user)
        except Exception as exc:
            return server_error("Failed to upload selfie", exc)

        return ok(
            {"recordId": str(record.pk), "selfie": SelfieMetadataSerializer(metadata).data},
            message="Selfie uploaded successfully",
        )
