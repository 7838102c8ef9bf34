"""
Django admin configuration for the exchange models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Message, Review, Skill, Thread, Transaction, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with the public profile fields.
    """

    list_display = [
        'email',
        'username',
        'name',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'name',
        'first_name',
        'last_name',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': ('name', 'first_name', 'last_name', 'email', 'picture')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('username', 'email', 'name', 'password1', 'password2'),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


@admin.register(Skill)
class SkillAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name']
    ordering = ['name']


class MessageInline(admin.TabularInline):
    """Read-only inline; messages are never edited after sending."""
    model = Message
    extra = 0
    fields = ['sender', 'message', 'time_sent']
    readonly_fields = fields
    can_delete = False
    ordering = ['time_sent']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin interface for Transaction model.

    Status is read-only here; it only changes through the exchange service
    so that concurrent updates stay consistent.
    """

    list_display = [
        'id',
        'creator',
        'recipient',
        'service',
        'request_type',
        'status',
        'happened_at',
        'created_at',
    ]

    list_filter = [
        'status',
        'request_type',
        'created_at',
    ]

    search_fields = [
        'creator__email',
        'creator__username',
        'recipient__email',
        'recipient__username',
        'service__name',
    ]

    readonly_fields = ['status', 'created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [MessageInline]

    fieldsets = (
        (None, {
            'fields': ('creator', 'recipient', 'service', 'request_type', 'status')
        }),
        (_('Schedule'), {
            'fields': ('happened_at', 'latitude', 'longitude', 'place_name')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Thread)
class ThreadAdmin(admin.ModelAdmin):
    list_display = ['id', 'last_updated', 'created_at']
    filter_horizontal = ['participants']
    readonly_fields = ['last_updated', 'created_at']
    ordering = ['-last_updated']
    inlines = [MessageInline]


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model."""

    list_display = [
        'id',
        'creator',
        'transaction',
        'rating',
        'time_sent',
    ]

    list_filter = [
        'rating',
        'time_sent',
    ]

    search_fields = [
        'creator__email',
        'creator__username',
        'text',
    ]

    readonly_fields = ['time_sent']

    ordering = ['-time_sent']

    date_hierarchy = 'time_sent'

    list_per_page = 25
