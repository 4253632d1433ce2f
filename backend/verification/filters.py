import django_filters

from .models import VerificationRecord


class VerificationRecordFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(method="filter_status")

    class Meta:
        model = VerificationRecord
        fields: list[str] = []

    def filter_status(self, queryset, name, value):
        status_value = (value or "").strip().lower()
        if not status_value or status_value == "all":
            return queryset
        return queryset.filter(status=status_value)
