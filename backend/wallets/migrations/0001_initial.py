import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Balance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('token_id', models.PositiveIntegerField()),
                ('tier', models.CharField(choices=[('MAIN', 'Main'), ('BONUS', 'Bonus')], max_length=5)),
                ('amount', models.DecimalField(decimal_places=8, default=Decimal('0'), max_digits=28)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='balances', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'token_id', 'tier'), name='unique_balance_per_tier'),
                    models.CheckConstraint(condition=models.Q(amount__gte=0), name='balance_amount_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserBonus',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('token_id', models.PositiveIntegerField()),
                ('granted_amount', models.DecimalField(decimal_places=8, max_digits=28)),
                ('required_wager', models.DecimalField(decimal_places=8, max_digits=28)),
                ('wagered_amount', models.DecimalField(decimal_places=8, default=Decimal('0'), max_digits=28)),
                ('is_active', models.BooleanField(default=True)),
                ('is_completed', models.BooleanField(default=False)),
                ('expires_at', models.DateTimeField()),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bonuses', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [models.Index(fields=['user', 'token_id', 'is_active'], name='userbonus_user_token_active')],
            },
        ),
        migrations.CreateModel(
            name='WalletTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('token_id', models.PositiveIntegerField()),
                ('tier', models.CharField(choices=[('MAIN', 'Main'), ('BONUS', 'Bonus')], max_length=5)),
                ('amount', models.DecimalField(decimal_places=8, max_digits=28)),
                ('tx_type', models.CharField(choices=[('DEBIT', 'Debit'), ('CREDIT', 'Credit')], max_length=6)),
                ('reference', models.CharField(max_length=96, unique=True)),
                ('balance_after', models.DecimalField(decimal_places=8, max_digits=28)),
                ('meta', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='wallet_txs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [models.Index(fields=['user', 'created_at'], name='wallettx_user_created')],
            },
        ),
    ]
