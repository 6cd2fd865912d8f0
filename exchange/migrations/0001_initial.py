import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
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
                ('points_balance', models.IntegerField(default=0, help_text='Cached sum of the points ledger. Never edit directly.', validators=[django.core.validators.MinValueValidator(0, message='Points balance cannot be negative.')], verbose_name='points balance')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(points_balance__gte=0), name='user_points_balance_non_negative'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(help_text='Title of the item', max_length=200, verbose_name='title')),
                ('description', models.TextField(blank=True, default='', help_text='Detailed description of the item', verbose_name='description')),
                ('price', models.DecimalField(decimal_places=2, help_text='Listing price (must be greater than 0)', max_digits=10, verbose_name='price')),
                ('status', models.CharField(choices=[('active', 'Active'), ('sold', 'Sold'), ('withdrawn', 'Withdrawn')], default='active', help_text='Lifecycle status of the listing', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('owner', models.ForeignKey(help_text='User currently owning this item', on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'item',
                'verbose_name_plural': 'items',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner'], name='item_owner_idx'),
                    models.Index(fields=['status'], name='item_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('total_amount', models.DecimalField(decimal_places=2, help_text='Item price at the time of purchase', max_digits=10, verbose_name='total amount')),
                ('points_used', models.PositiveIntegerField(help_text='Points deducted from the buyer', verbose_name='points used')),
                ('payment_method', models.CharField(choices=[('points', 'Points')], default='points', max_length=20, verbose_name='payment method')),
                ('status', models.CharField(choices=[('paid', 'Paid')], default='paid', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('buyer', models.ForeignKey(help_text='User who bought the item', on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to=settings.AUTH_USER_MODEL)),
                ('seller', models.ForeignKey(help_text='Owner of the item at the time of sale', on_delete=django.db.models.deletion.PROTECT, related_name='sales', to=settings.AUTH_USER_MODEL)),
                ('item', models.ForeignKey(help_text='Item that changed hands', on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='exchange.item')),
            ],
            options={
                'verbose_name': 'order',
                'verbose_name_plural': 'orders',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['buyer'], name='order_buyer_idx'),
                    models.Index(fields=['seller'], name='order_seller_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Swap',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='status')),
                ('message', models.TextField(blank=True, default='', verbose_name='message')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('requester', models.ForeignKey(help_text='User proposing the swap', on_delete=django.db.models.deletion.CASCADE, related_name='swaps_requested', to=settings.AUTH_USER_MODEL)),
                ('requester_item', models.ForeignKey(help_text="Requester's item offered in exchange", on_delete=django.db.models.deletion.CASCADE, related_name='swaps_offered', to='exchange.item')),
                ('target_user', models.ForeignKey(help_text='Owner of the requested item', on_delete=django.db.models.deletion.CASCADE, related_name='swaps_received', to=settings.AUTH_USER_MODEL)),
                ('target_item', models.ForeignKey(help_text="Target user's item being asked for", on_delete=django.db.models.deletion.CASCADE, related_name='swaps_requested', to='exchange.item')),
            ],
            options={
                'verbose_name': 'swap',
                'verbose_name_plural': 'swaps',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['requester'], name='swap_requester_idx'),
                    models.Index(fields=['target_user'], name='swap_target_user_idx'),
                    models.Index(fields=['status'], name='swap_status_idx'),
                    models.Index(fields=['created_at'], name='swap_created_at_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PointsTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.IntegerField(help_text='Signed points amount (negative for redemptions)', verbose_name='amount')),
                ('transaction_type', models.CharField(choices=[('earned', 'Earned'), ('redeemed', 'Redeemed'), ('bonus', 'Bonus'), ('refund', 'Refund')], max_length=20, verbose_name='transaction type')),
                ('description', models.CharField(max_length=255, verbose_name='description')),
                ('reference_id', models.PositiveBigIntegerField(blank=True, null=True, verbose_name='reference id')),
                ('reference_type', models.CharField(blank=True, default='', max_length=50, verbose_name='reference type')),
                ('balance_after', models.IntegerField(help_text='User balance once this entry was applied', verbose_name='balance after')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='points_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'points transaction',
                'verbose_name_plural': 'points transactions',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user'], name='points_tx_user_idx'),
                    models.Index(fields=['transaction_type'], name='points_tx_type_idx'),
                    models.Index(fields=['created_at'], name='points_tx_created_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(reference_id__isnull=False), fields=('user', 'reference_id', 'reference_type', 'transaction_type'), name='unique_points_reference_per_user'),
                    models.CheckConstraint(condition=models.Q(amount=0, _negated=True), name='points_amount_non_zero'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RedemptionOption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255, verbose_name='title')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('points_required', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='points required')),
                ('reward_type', models.CharField(choices=[('discount', 'Discount'), ('free_shipping', 'Free Shipping'), ('voucher', 'Voucher'), ('physical_reward', 'Physical Reward')], max_length=50, verbose_name='reward type')),
                ('reward_value', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name='reward value')),
                ('reward_code', models.CharField(blank=True, default='', max_length=100, verbose_name='reward code template')),
                ('max_redemptions_per_user', models.PositiveIntegerField(blank=True, null=True, verbose_name='max redemptions per user')),
                ('total_available', models.PositiveIntegerField(blank=True, null=True, verbose_name='total available')),
                ('total_redeemed', models.PositiveIntegerField(default=0, verbose_name='total redeemed')),
                ('is_active', models.BooleanField(default=True, verbose_name='is active')),
                ('expires_at', models.DateTimeField(blank=True, null=True, verbose_name='expires at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
            ],
            options={
                'verbose_name': 'redemption option',
                'verbose_name_plural': 'redemption options',
                'ordering': ['points_required'],
                'indexes': [
                    models.Index(fields=['is_active'], name='redemption_opt_active_idx'),
                    models.Index(fields=['points_required'], name='redemption_opt_points_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('total_available__isnull', True), ('total_redeemed__lte', models.F('total_available')), _connector='OR'), name='redemption_total_within_cap'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserRedemption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('points_used', models.PositiveIntegerField(verbose_name='points used')),
                ('reward_code', models.CharField(max_length=100, unique=True, verbose_name='reward code')),
                ('is_used', models.BooleanField(default=False, verbose_name='is used')),
                ('used_at', models.DateTimeField(blank=True, null=True, verbose_name='used at')),
                ('expires_at', models.DateTimeField(blank=True, null=True, verbose_name='expires at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('redemption_option', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='redemptions', to='exchange.redemptionoption')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='redemptions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'user redemption',
                'verbose_name_plural': 'user redemptions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user'], name='user_redemption_user_idx'),
                    models.Index(fields=['is_used'], name='user_redemption_used_idx'),
                ],
            },
        ),
    ]
