import django_filters as filters
from django.db.models import Q

from settlement.models import Payment, Payout
from settlement.state_machines import PaymentStatus, PayoutMethod, PayoutStatus


class PayoutFilter(filters.FilterSet):
    status = filters.ChoiceFilter(choices=PayoutStatus.choices)
    method = filters.ChoiceFilter(choices=PayoutMethod.choices)
    merchant = filters.UUIDFilter(field_name="merchant_id")
    order = filters.UUIDFilter(field_name="order_id")
    start_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    search = filters.CharFilter(method="filter_search")

    class Meta:
        model = Payout
        fields = ["status", "method", "merchant", "order", "start_date", "end_date"]

    def filter_search(self, queryset, name, value):
        # Merchant name, order number or transfer/manual reference
        return queryset.filter(
            Q(merchant__name__icontains=value)
            | Q(order__order_number__icontains=value)
            | Q(stripe_transfer_id__icontains=value)
            | Q(manual_reference__icontains=value)
        )


class PaymentFilter(filters.FilterSet):
    status = filters.ChoiceFilter(choices=PaymentStatus.choices)
    merchant = filters.UUIDFilter(field_name="merchant_id")
    order = filters.UUIDFilter(field_name="order_id")
    start_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    search = filters.CharFilter(method="filter_search")

    class Meta:
        model = Payment
        fields = ["status", "merchant", "order", "start_date", "end_date"]

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(merchant__name__icontains=value)
            | Q(order__order_number__icontains=value)
            | Q(stripe_payment_intent_id__icontains=value)
            | Q(customer_email__icontains=value)
        )
