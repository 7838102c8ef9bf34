import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import exchange.validators
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('name', models.CharField(blank=True, default='', help_text='Public display name.', max_length=200, verbose_name='name')),
                ('picture', models.URLField(blank=True, default='', help_text='Optional. URL of the profile picture.', max_length=500, verbose_name='picture')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Skill',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Name of the skill or service', max_length=200, unique=True, validators=[exchange.validators.validate_not_blank], verbose_name='name')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
            ],
            options={
                'verbose_name': 'skill',
                'verbose_name_plural': 'skills',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Thread',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('last_updated', models.DateTimeField(default=django.utils.timezone.now, help_text='Time of the most recent message', verbose_name='last updated')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('participants', models.ManyToManyField(help_text='Users taking part in the conversation', related_name='threads', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'thread',
                'verbose_name_plural': 'threads',
                'ordering': ['-last_updated'],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('request_type', models.CharField(choices=[('offer', 'Offer'), ('request', 'Request')], help_text='Whether the creator offers or requests the service', max_length=10, verbose_name='request type')),
                ('status', models.CharField(choices=[('proposed', 'Proposed'), ('accepted', 'Accepted'), ('sender_ack', 'Acknowledged by creator'), ('recipient_ack', 'Acknowledged by recipient'), ('complete', 'Complete'), ('rejected', 'Rejected'), ('cancelled', 'Cancelled')], default='proposed', help_text='Current status of the exchange', max_length=20, verbose_name='status')),
                ('happened_at', models.DateTimeField(blank=True, help_text='When the exchange takes place', null=True, verbose_name='scheduled time')),
                ('latitude', models.FloatField(blank=True, null=True, validators=[exchange.validators.validate_latitude], verbose_name='latitude')),
                ('longitude', models.FloatField(blank=True, null=True, validators=[exchange.validators.validate_longitude], verbose_name='longitude')),
                ('place_name', models.CharField(blank=True, default='', help_text='Name of the meeting place', max_length=300, verbose_name='place name')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('creator', models.ForeignKey(help_text='User who proposed the exchange', on_delete=django.db.models.deletion.PROTECT, related_name='created_transactions', to=settings.AUTH_USER_MODEL)),
                ('recipient', models.ForeignKey(help_text='User the exchange was proposed to', on_delete=django.db.models.deletion.PROTECT, related_name='received_transactions', to=settings.AUTH_USER_MODEL)),
                ('service', models.ForeignKey(help_text='Skill being exchanged', on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='exchange.skill')),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['creator'], name='transaction_creator_idx'),
                    models.Index(fields=['recipient'], name='transaction_recipient_idx'),
                    models.Index(fields=['status'], name='transaction_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('creator', models.F('recipient')), _negated=True), name='transaction_distinct_participants'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField(help_text='Message body', validators=[exchange.validators.validate_not_blank], verbose_name='message')),
                ('time_sent', models.DateTimeField(default=django.utils.timezone.now, verbose_name='time sent')),
                ('sender', models.ForeignKey(help_text='Author of the message', on_delete=django.db.models.deletion.CASCADE, related_name='messages_sent', to=settings.AUTH_USER_MODEL)),
                ('thread', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='exchange.thread')),
                ('transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='exchange.transaction')),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['time_sent', 'pk'],
                'indexes': [
                    models.Index(fields=['thread', 'time_sent'], name='message_thread_time_idx'),
                    models.Index(fields=['transaction', 'time_sent'], name='message_transaction_time_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('thread__isnull', False), ('transaction__isnull', True)), models.Q(('thread__isnull', True), ('transaction__isnull', False)), _connector='OR'), name='message_single_owner'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rating', models.PositiveSmallIntegerField(help_text='Rating from 1 to 5 stars', validators=[django.core.validators.MinValueValidator(1, message='Rating must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Rating must be at most 5.')], verbose_name='rating')),
                ('text', models.TextField(help_text='Written feedback about the exchange', validators=[exchange.validators.validate_not_blank], verbose_name='text')),
                ('time_sent', models.DateTimeField(default=django.utils.timezone.now, verbose_name='time sent')),
                ('creator', models.ForeignKey(help_text='User writing the review', on_delete=django.db.models.deletion.CASCADE, related_name='reviews_given', to=settings.AUTH_USER_MODEL)),
                ('transaction', models.ForeignKey(help_text='Exchange being reviewed', on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to='exchange.transaction')),
            ],
            options={
                'verbose_name': 'review',
                'verbose_name_plural': 'reviews',
                'ordering': ['-time_sent'],
                'constraints': [
                    models.UniqueConstraint(fields=('transaction', 'creator'), name='unique_review_per_transaction_creator'),
                ],
            },
        ),
        migrations.AddField(
            model_name='user',
            name='unread_threads',
            field=models.ManyToManyField(blank=True, help_text='Threads with messages the user has not read yet', related_name='unread_by', to='exchange.thread'),
        ),
        migrations.AddField(
            model_name='user',
            name='unread_transactions',
            field=models.ManyToManyField(blank=True, help_text='Transactions with messages the user has not read yet', related_name='unread_by', to='exchange.transaction'),
        ),
    ]
