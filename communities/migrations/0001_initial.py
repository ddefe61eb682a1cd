# Generated migration for communities app

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Community',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('slug', models.SlugField(max_length=200, unique=True)),
                ('description', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('pre_registration', 'Pre-registration'), ('inactive', 'Inactive')], default='active', max_length=20)),
                ('opening_date', models.DateTimeField(blank=True, help_text='When a pre-registration community opens; first invoices are anchored here', null=True)),
                ('stripe_account_id', models.CharField(blank=True, help_text="Stripe connected account that bills this community's members", max_length=200)),
                ('stripe_price_id', models.CharField(blank=True, help_text='Recurring Stripe Price for the membership', max_length=200)),
                ('membership_price', models.PositiveIntegerField(default=0, help_text='Membership price in cents, for display')),
                ('currency', models.CharField(default='eur', max_length=3)),
                ('active_member_count', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_communities', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Community',
                'verbose_name_plural': 'Communities',
                'indexes': [models.Index(fields=['status', 'opening_date'], name='community_status_opening_idx')],
            },
        ),
        migrations.CreateModel(
            name='EmailPreference',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('unsubscribed_all', models.BooleanField(default=False)),
                ('community_updates', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Email Preference',
                'verbose_name_plural': 'Email Preferences',
            },
        ),
        migrations.CreateModel(
            name='CommunityMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('pending_pre_registration', 'Pending pre-registration'), ('pre_registered', 'Pre-registered'), ('active', 'Active'), ('inactive', 'Inactive')], default='pending_pre_registration', max_length=30)),
                ('stripe_customer_id', models.CharField(blank=True, max_length=200, null=True)),
                ('stripe_subscription_id', models.CharField(blank=True, max_length=200, null=True)),
                ('stripe_invoice_id', models.CharField(blank=True, max_length=200, null=True)),
                ('pre_registration_payment_method_id', models.CharField(blank=True, max_length=200, null=True)),
                ('platform_fee_percentage', models.DecimalField(decimal_places=2, default=0, help_text='Fee captured at registration; fixed for the life of the subscription', max_digits=5)),
                ('contact_info', models.JSONField(blank=True, default=dict)),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('community', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='members', to='communities.community')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='community_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Community Member',
                'verbose_name_plural': 'Community Members',
                'indexes': [
                    models.Index(fields=['community', 'status'], name='member_community_status_idx'),
                    models.Index(fields=['stripe_subscription_id'], name='member_subscription_idx'),
                ],
                'constraints': [models.UniqueConstraint(fields=('community', 'user'), name='unique_community_member')],
            },
        ),
    ]
