"""
Request and response serializers for the exchange API.

Input serializers only check shape and types; business rules (who may do
what, which transitions apply) live in the service modules.
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Skill, Transaction

User = get_user_model()


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Public user details embedded in other responses.

    Fields:
    - id: User ID
    - name: Display name
    - picture: Profile picture URL
    """

    name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'picture']
        read_only_fields = fields


class SkillSerializer(serializers.ModelSerializer):

    class Meta:
        model = Skill
        fields = ['id', 'name']
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction details for API responses.

    ``other_person`` is the participant who is not the requesting user; it is
    resolved from the ``request`` in the serializer context.
    """

    creator = UserSummarySerializer(read_only=True)
    recipient = UserSummarySerializer(read_only=True)
    service = SkillSerializer(read_only=True)
    other_person = serializers.SerializerMethodField()
    location = serializers.SerializerMethodField()
    message_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Transaction
        fields = [
            'id', 'creator', 'recipient', 'other_person', 'service',
            'request_type', 'status', 'happened_at', 'location',
            'message_count', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_other_person(self, obj):
        request = self.context.get('request')
        if not request or not request.user or not obj.is_participant(request.user):
            return None
        return UserSummarySerializer(obj.other_participant(request.user)).data

    def get_location(self, obj):
        if obj.latitude is None or obj.longitude is None:
            return None
        return {
            'latitude': obj.latitude,
            'longitude': obj.longitude,
            'name': obj.place_name,
        }


class TransactionProposeSerializer(serializers.Serializer):
    """
    Validate a new exchange proposal.

    Fields:
    - recipient: Required, ID of the user the exchange is proposed to
    - service: Required, ID of the skill being exchanged
    - request_type: Required, 'offer' or 'request'
    - message: Optional first chat message
    """

    recipient = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())
    service = serializers.PrimaryKeyRelatedField(queryset=Skill.objects.all())
    request_type = serializers.ChoiceField(choices=Transaction.RequestType.choices)
    message = serializers.CharField(required=False, allow_blank=True, max_length=4000)

    def validate_recipient(self, value):
        request = self.context.get('request')
        if request and request.user and value.pk == request.user.pk:
            raise serializers.ValidationError('You cannot propose an exchange to yourself.')
        return value


class OptionalMessageSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, max_length=4000)


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    name = serializers.CharField(required=False, allow_blank=True, max_length=300, default='')


class ScheduleSerializer(serializers.Serializer):
    """
    Validate a schedule update.

    At least one of ``happened_at`` and ``location`` is required.
    """

    happened_at = serializers.DateTimeField(required=False)
    location = LocationSerializer(required=False)

    def validate(self, attrs):
        if 'happened_at' not in attrs and 'location' not in attrs:
            raise serializers.ValidationError('Provide a time or a location to schedule.')
        return attrs


class MessageCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=4000)


class ReviewCreateSerializer(serializers.Serializer):
    """
    Validate a review submission.

    Fields:
    - rating: Required, integer from 1 to 5
    - text: Required, written feedback
    """

    rating = serializers.IntegerField(min_value=1, max_value=5)
    text = serializers.CharField(max_length=4000)


class ReviewSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    transaction = serializers.PrimaryKeyRelatedField(read_only=True)
    creator = UserSummarySerializer(read_only=True)
    rating = serializers.IntegerField(read_only=True)
    text = serializers.CharField(read_only=True)
    time_sent = serializers.DateTimeField(read_only=True)


class TransitionResultSerializer(serializers.Serializer):
    id = serializers.IntegerField(source='transaction_id')
    status = serializers.CharField()
    outcome = serializers.CharField(source='outcome.value')
