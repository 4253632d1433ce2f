from django.urls import re_path

from .views import (
    DynamicFieldKeysView,
    RecordDetailView,
    RecordListView,
    RecordSelfieView,
    VerifyOtpView,
    VerifySingleView,
)
from .views_public import PublicSelfieUploadView, VerifyOtpQrView, VerifyQrView


# Trailing slashes are optional so clients calling the bare paths are not redirected.
urlpatterns = [
    re_path(r"^dynamic-field-keys/?$", DynamicFieldKeysView.as_view(), name="verification-dynamic-field-keys"),
    re_path(r"^records/?$", RecordListView.as_view(), name="verification-records"),
    re_path(r"^records/(?P<record_id>[^/]+)/?$", RecordDetailView.as_view(), name="verification-record-detail"),
    re_path(
        r"^records/(?P<record_id>[^/]+)/selfie/?$",
        RecordSelfieView.as_view(),
        name="verification-record-selfie",
    ),
    re_path(
        r"^records/(?P<record_id>[^/]+)/selfie-public/?$",
        PublicSelfieUploadView.as_view(),
        name="verification-record-selfie-public",
    ),
    re_path(r"^verify-single/?$", VerifySingleView.as_view(), name="verification-verify-single"),
    re_path(r"^verify-otp/?$", VerifyOtpView.as_view(), name="verification-verify-otp"),
    re_path(r"^verify-qr/(?P<qr_code>[^/]+)/?$", VerifyQrView.as_view(), name="verification-verify-qr"),
    re_path(r"^verify-otp-qr/(?P<qr_code>[^/]+)/?$", VerifyOtpQrView.as_view(), name="verification-verify-otp-qr"),
]
