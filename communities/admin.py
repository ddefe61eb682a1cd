from django.contrib import admin
from django.utils.html import format_html

from .models import Community, CommunityMember, EmailPreference
from .services.openings import open_community


def _stripe_dashboard_url(account_id, path):
    if account_id:
        return f"https://dashboard.stripe.com/{account_id}/{path}"
    return f"https://dashboard.stripe.com/{path}"


class CommunityMemberInline(admin.TabularInline):
    model = CommunityMember
    extra = 0
    fields = ['user', 'status', 'platform_fee_percentage', 'stripe_subscription_id', 'joined_at']
    readonly_fields = fields
    ordering = ['-joined_at']
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Community)
class CommunityAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'slug', 'status', 'opening_date', 'price_display',
        'active_member_count', 'pre_registered_count', 'created_at'
    ]
    list_filter = ['status']
    search_fields = ['name', 'slug', 'stripe_account_id']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['active_member_count', 'created_at', 'updated_at']
    inlines = [CommunityMemberInline]
    actions = ['run_opening']

    fieldsets = (
        ('Community', {
            'fields': ('name', 'slug', 'description', 'created_by')
        }),
        ('Lifecycle', {
            'fields': ('status', 'opening_date'),
            'description': 'A pre-registration community opens on its opening date.'
        }),
        ('Stripe Integration', {
            'fields': ('stripe_account_id', 'stripe_price_id', 'membership_price', 'currency'),
            'classes': ('collapse',)
        }),
        ('Stats', {
            'fields': ('active_member_count', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    @admin.action(description='Open selected pre-registration communities now')
    def run_opening(self, request, queryset):
        opened = 0
        for community in queryset.filter(status=Community.Status.PRE_REGISTRATION):
            result = open_community(community)
            if result.opened:
                opened += 1
            elif result.error:
                self.message_user(request, f'{community.name}: {result.error}', level='error')
        self.message_user(request, f'{opened} community(ies) opened.')

    def price_display(self, obj):
        return f"{obj.membership_price / 100:.2f} {obj.currency.upper()}"
    price_display.short_description = 'Price'

    def pre_registered_count(self, obj):
        return obj.members.filter(status=CommunityMember.Status.PRE_REGISTERED).count()
    pre_registered_count.short_description = 'Pre-registered'


@admin.register(CommunityMember)
class CommunityMemberAdmin(admin.ModelAdmin):
    list_display = [
        'username', 'community', 'status', 'platform_fee_percentage',
        'stripe_link', 'joined_at'
    ]
    list_filter = ['status', 'community']
    search_fields = [
        'user__username', 'user__email', 'community__slug',
        'stripe_customer_id', 'stripe_subscription_id'
    ]
    readonly_fields = [
        'status', 'platform_fee_percentage',
        'stripe_customer_id', 'stripe_subscription_id', 'stripe_invoice_id',
        'pre_registration_payment_method_id', 'joined_at', 'updated_at'
    ]

    fieldsets = (
        ('Member', {
            'fields': ('community', 'user', 'status', 'contact_info')
        }),
        ('Billing', {
            'fields': ('platform_fee_percentage',),
            'description': 'The fee is fixed when the member registers.'
        }),
        ('Stripe Integration', {
            'fields': (
                'stripe_customer_id', 'stripe_subscription_id', 'stripe_invoice_id',
                'pre_registration_payment_method_id'
            ),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('joined_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def username(self, obj):
        return obj.user.username
    username.short_description = 'User'
    username.admin_order_field = 'user__username'

    def stripe_link(self, obj):
        if obj.stripe_subscription_id:
            url = _stripe_dashboard_url(
                obj.community.stripe_account_id,
                f"subscriptions/{obj.stripe_subscription_id}"
            )
            return format_html('<a href="{}" target="_blank">View in Stripe</a>', url)
        return "-"
    stripe_link.short_description = 'Stripe'


@admin.register(EmailPreference)
class EmailPreferenceAdmin(admin.ModelAdmin):
    list_display = ['email', 'unsubscribed_all', 'community_updates', 'updated_at']
    list_filter = ['unsubscribed_all', 'community_updates']
    search_fields = ['email']
