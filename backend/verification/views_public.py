from __future__ import annotations

from rest_framework.exceptions import PermissionDenied
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.views import APIView

from .responses import ok, server_error
from .serializers import QrVerifyOtpSerializer, SelfieMetadataSerializer, SelfieUploadSerializer, SendOtpSerializer
from .services import AuthorizationContext, attach_selfie
from .throttles import PublicQrRateThrottle
from .views import OtpFlowMixin, get_record_or_404


class PublicQrAPIView(APIView):
    """Unauthenticated endpoint reached through a user's QR code."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [PublicQrRateThrottle]


class VerifyQrView(OtpFlowMixin, PublicQrAPIView):
    def post(self, request, qr_code: str, format=None):
        SendOtpSerializer(data=request.data).is_valid(raise_exception=True)
        context = AuthorizationContext.for_qr_code(qr_code)

        custom_fields = request.data.get("customFields")
        return self.handle_send_otp(
            request,
            context,
            extra={
                "customFields": custom_fields if isinstance(custom_fields, dict) else {},
                "userId": context.owner.pk,
                "hasSelfieAccess": context.owner.can_upload_selfies(),
            },
        )


class VerifyOtpQrView(OtpFlowMixin, PublicQrAPIView):
    verify_serializer_class = QrVerifyOtpSerializer

    def post(self, request, qr_code: str, format=None):
        QrVerifyOtpSerializer(data=request.data).is_valid(raise_exception=True)
        context = AuthorizationContext.for_qr_code(qr_code)
        return self.handle_verify_otp(
            request,
            context,
            extra={"hasSelfieAccess": context.owner.can_upload_selfies()},
        )


class PublicSelfieUploadView(PublicQrAPIView):
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, record_id: str, format=None):
        record = get_record_or_404(record_id)
        if not record.is_qr_originated:
            raise PermissionDenied("Public selfie upload only allowed for QR code verifications")
        owner = record.user
        if not owner.can_upload_selfies():
            raise PermissionDenied("Selfie upload module is not enabled for this user")

        serializer = SelfieUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            metadata = attach_selfie(record, serializer.validated_data["selfie"], request=request, actor=owner)
        except Exception as exc:
            return server_error("Failed to upload selfie", exc)

        return ok(
            {"recordId": str(record.pk), "selfie": SelfieMetadataSerializer(metadata).data},
            message="Selfie uploaded successfully",
        )
