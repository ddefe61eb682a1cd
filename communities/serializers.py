"""
Serializers for community membership endpoints.
"""

from rest_framework import serializers

from shared.utils import decode_contact_info
from .models import Community, CommunityMember


class CommunitySummarySerializer(serializers.ModelSerializer):
    """Public fields of a community, embedded in membership responses."""

    class Meta:
        model = Community
        fields = ['id', 'name', 'slug', 'status', 'opening_date', 'membership_price', 'currency']


class CommunityMemberSerializer(serializers.ModelSerializer):
    """Serializer for a member's own membership status."""

    community = CommunitySummarySerializer(read_only=True)
    contact_info = serializers.SerializerMethodField()
    is_cancellable = serializers.BooleanField(read_only=True)

    class Meta:
        model = CommunityMember
        fields = [
            'id', 'community', 'status', 'platform_fee_percentage',
            'is_cancellable', 'contact_info', 'joined_at', 'updated_at'
        ]

    def get_contact_info(self, obj):
        return decode_contact_info(obj.contact_info).model_dump(exclude_none=True)


class JoinPreRegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False, allow_blank=True)


class ConfirmPreRegistrationSerializer(serializers.Serializer):
    userId = serializers.CharField(required=False)
    setupIntentId = serializers.CharField()
    # Decoded leniently; malformed contact info is stored as empty.
    contactInfo = serializers.JSONField(required=False)


class CancelPreRegistrationSerializer(serializers.Serializer):
    userId = serializers.CharField(required=False)
