import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='RoundCommitment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('server_seed', models.CharField(max_length=64)),
                ('server_seed_hash', models.CharField(max_length=64)),
                ('client_seed', models.CharField(max_length=64)),
                ('nonce', models.PositiveBigIntegerField()),
                ('status', models.CharField(choices=[('OPEN', 'Open'), ('USED', 'Used')], default='OPEN', max_length=8)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('used_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='plinko_commitments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-id'],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'nonce'), name='unique_commitment_nonce'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PlinkoRound',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('round_id', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('token_id', models.PositiveIntegerField()),
                ('balance_tier', models.CharField(choices=[('MAIN', 'Main'), ('BONUS', 'Bonus')], max_length=5)),
                ('bet_amount', models.DecimalField(decimal_places=8, max_digits=28)),
                ('win_amount', models.DecimalField(decimal_places=8, default=0, max_digits=28)),
                ('risk', models.CharField(max_length=16)),
                ('rows', models.PositiveSmallIntegerField()),
                ('slot', models.PositiveSmallIntegerField()),
                ('multiplier', models.DecimalField(decimal_places=4, max_digits=12)),
                ('result', models.CharField(max_length=8)),
                ('result_path', models.JSONField(default=list)),
                ('directions', models.JSONField(default=list)),
                ('server_seed', models.CharField(max_length=64)),
                ('server_seed_hash', models.CharField(max_length=64)),
                ('client_seed', models.CharField(max_length=64)),
                ('nonce', models.PositiveBigIntegerField()),
                ('credit_status', models.CharField(choices=[('NOT_REQUIRED', 'Not required'), ('CREDITED', 'Credited'), ('FAILED', 'Failed')], default='NOT_REQUIRED', max_length=16)),
                ('created_at', models.DateTimeField()),
                ('settled_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='plinko_rounds', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='plinkoround_user_created'),
                    models.Index(fields=['credit_status'], name='plinkoround_credit_status'),
                ],
            },
        ),
    ]
