"""
Community and membership models for DanceHub.

A community is a tenant with its own Stripe connected account. Communities
can open for pre-registration before their opening date: members save a
payment method and receive a subscription whose first invoice is anchored to
the opening date.

Both models carry a small lifecycle state machine. Transitions are applied
with a conditional UPDATE (``WHERE status IN <allowed sources>``) so each one
happens at most once, even when a request and the reconciliation job race.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from .exceptions import InvalidState


def _apply_transition(instance, target, transitions, extra_fields=None):
    """
    Move ``instance`` to ``target`` if the current stored status allows it.

    Returns True when this call performed the transition, False when the row
    was already in ``target`` (idempotent no-op). Raises InvalidState for a
    transition the lifecycle does not allow.
    """
    model = type(instance)
    sources = [source for source, targets in transitions.items() if target in targets]
    updates = {'status': target, 'updated_at': timezone.now()}
    updates.update(extra_fields or {})

    updated = model.objects.filter(pk=instance.pk, status__in=sources).update(**updates)
    if updated:
        for field, value in updates.items():
            setattr(instance, field, value)
        return True

    current = model.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
    if current is None:
        raise model.DoesNotExist(f"{model.__name__} {instance.pk} no longer exists")
    instance.status = current
    if current == target:
        return False
    raise InvalidState(
        f"Cannot move {model.__name__.lower()} from '{current}' to '{target}'"
    )


class Community(models.Model):
    """A tenant community with its own Stripe connected account."""

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        PRE_REGISTRATION = 'pre_registration', 'Pre-registration'
        INACTIVE = 'inactive', 'Inactive'

    # Nothing ever goes back to pre_registration.
    TRANSITIONS = {
        Status.PRE_REGISTRATION: {Status.ACTIVE, Status.INACTIVE},
        Status.ACTIVE: {Status.INACTIVE},
        Status.INACTIVE: {Status.ACTIVE},
    }

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_communities'
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    opening_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a pre-registration community opens; first invoices are anchored here"
    )

    # Stripe integration
    stripe_account_id = models.CharField(
        max_length=200,
        blank=True,
        help_text="Stripe connected account that bills this community's members"
    )
    stripe_price_id = models.CharField(
        max_length=200,
        blank=True,
        help_text="Recurring Stripe Price for the membership"
    )
    membership_price = models.PositiveIntegerField(
        default=0,
        help_text="Membership price in cents, for display"
    )
    currency = models.CharField(max_length=3, default='eur')
    active_member_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Community'
        verbose_name_plural = 'Communities'
        indexes = [
            models.Index(fields=['status', 'opening_date'], name='community_status_opening_idx'),
        ]

    def __str__(self):
        return f"Community({self.slug}, {self.status})"

    @property
    def is_pre_registration(self):
        return self.status == self.Status.PRE_REGISTRATION

    def opening_timestamp(self):
        """Opening date as unix seconds, or None."""
        if not self.opening_date:
            return None
        return int(self.opening_date.timestamp())

    def pre_registration_block_reason(self, now=None):
        """Why pre-registration is closed, or None when it is open."""
        now = now or timezone.now()
        if self.status != self.Status.PRE_REGISTRATION:
            return "Community is not accepting pre-registrations"
        if not self.opening_date:
            return "Community opening date not set"
        if not self.stripe_price_id:
            return "Community membership price not configured"
        if self.opening_date <= now:
            return "Community opening date has passed"
        return None

    def accepts_pre_registrations(self, now=None):
        return self.pre_registration_block_reason(now) is None

    def transition_to(self, target):
        """Apply a lifecycle transition; True if this call changed the status."""
        return _apply_transition(self, target, self.TRANSITIONS)

    def open(self):
        """Flip a pre-registration community to active (at most once)."""
        return self.transition_to(self.Status.ACTIVE)

    def save(self, *args, **kwargs):
        if self.pk and self.status == self.Status.PRE_REGISTRATION:
            stored = type(self).objects.filter(pk=self.pk).values_list('status', flat=True).first()
            if stored and stored != self.Status.PRE_REGISTRATION:
                raise InvalidState("A community cannot return to pre-registration")
        super().save(*args, **kwargs)


class CommunityMember(models.Model):
    """
    One user's membership in one community.

    A pre-registered member always references the Stripe subscription whose
    billing cycle is anchored to the community's opening date.
    """

    class Status(models.TextChoices):
        PENDING_PRE_REGISTRATION = 'pending_pre_registration', 'Pending pre-registration'
        PRE_REGISTERED = 'pre_registered', 'Pre-registered'
        ACTIVE = 'active', 'Active'
        INACTIVE = 'inactive', 'Inactive'

    TRANSITIONS = {
        Status.PENDING_PRE_REGISTRATION: {Status.PRE_REGISTERED, Status.INACTIVE},
        Status.PRE_REGISTERED: {Status.ACTIVE, Status.INACTIVE},
        Status.ACTIVE: {Status.INACTIVE},
        Status.INACTIVE: {Status.ACTIVE},
    }

    CANCELLABLE_STATUSES = (Status.PENDING_PRE_REGISTRATION, Status.PRE_REGISTERED)

    community = models.ForeignKey(
        Community,
        on_delete=models.CASCADE,
        related_name='members'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='community_memberships'
    )

    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.PENDING_PRE_REGISTRATION
    )

    # Stripe integration (objects live on the community's connected account)
    stripe_customer_id = models.CharField(max_length=200, blank=True, null=True)
    stripe_subscription_id = models.CharField(max_length=200, blank=True, null=True)
    stripe_invoice_id = models.CharField(max_length=200, blank=True, null=True)
    pre_registration_payment_method_id = models.CharField(max_length=200, blank=True, null=True)

    platform_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=0,
        help_text="Fee captured at registration; fixed for the life of the subscription"
    )

    contact_info = models.JSONField(default=dict, blank=True)

    joined_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Community Member'
        verbose_name_plural = 'Community Members'
        constraints = [
            models.UniqueConstraint(
                fields=['community', 'user'],
                name='unique_community_member'
            ),
        ]
        indexes = [
            models.Index(fields=['community', 'status'], name='member_community_status_idx'),
            models.Index(fields=['stripe_subscription_id'], name='member_subscription_idx'),
        ]

    def __str__(self):
        return f"CommunityMember({self.community_id}, {self.user_id}, {self.status})"

    @property
    def is_cancellable(self):
        return self.status in self.CANCELLABLE_STATUSES

    @property
    def decoded_contact_info(self):
        from shared.utils import decode_contact_info
        return decode_contact_info(self.contact_info)

    def transition_to(self, target, **extra_fields):
        return _apply_transition(self, target, self.TRANSITIONS, extra_fields)

    def activate(self):
        """pre_registered -> active, once the first invoice is paid."""
        return self.transition_to(self.Status.ACTIVE)

    def deactivate(self):
        return self.transition_to(self.Status.INACTIVE)

    def save(self, *args, **kwargs):
        if self.pk is None:
            if self.status == self.Status.PRE_REGISTERED and not self.stripe_subscription_id:
                raise InvalidState("A pre-registered member needs a Stripe subscription")
        else:
            stored_fee = type(self).objects.filter(pk=self.pk).values_list(
                'platform_fee_percentage', flat=True
            ).first()
            if stored_fee is not None and stored_fee != self._fee_as_stored():
                raise InvalidState("Platform fee percentage is fixed once a member registers")
        super().save(*args, **kwargs)

    def _fee_as_stored(self):
        """The assigned fee as the column would hold it (floats and strings included)."""
        field = self._meta.get_field('platform_fee_percentage')
        value = field.to_python(self.platform_fee_percentage)
        return value.quantize(Decimal('0.01')) if value is not None else None


class EmailPreference(models.Model):
    """Per-address opt-outs for non-transactional email."""

    class Category(models.TextChoices):
        TRANSACTIONAL = 'transactional', 'Transactional'
        COMMUNITY_UPDATES = 'community_updates', 'Community updates'

    email = models.EmailField(unique=True)
    unsubscribed_all = models.BooleanField(default=False)
    community_updates = models.BooleanField(default=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Email Preference'
        verbose_name_plural = 'Email Preferences'

    def __str__(self):
        return f"EmailPreference({self.email})"

    @classmethod
    def can_send(cls, email, category):
        """
        Transactional mail is always allowed. Otherwise honour the stored
        preferences; an address with no row has not opted out.
        """
        if category == cls.Category.TRANSACTIONAL:
            return True
        preference = cls.objects.filter(email__iexact=email).first()
        if preference is None:
            return True
        if preference.unsubscribed_all:
            return False
        if category == cls.Category.COMMUNITY_UPDATES:
            return preference.community_updates
        return True
