import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ReferralLedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('bet_amount', models.DecimalField(decimal_places=8, max_digits=28)),
                ('token_id', models.PositiveIntegerField()),
                ('balance_tier', models.CharField(choices=[('MAIN', 'Main'), ('BONUS', 'Bonus')], max_length=5)),
                ('reference', models.CharField(blank=True, default='', max_length=96)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('commission_paid', models.BooleanField(default=False)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='referral_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-id'],
                'indexes': [
                    models.Index(fields=['user', 'commission_paid'], name='refentry_user_paid'),
                    models.Index(fields=['created_at'], name='refentry_created'),
                ],
            },
        ),
    ]
