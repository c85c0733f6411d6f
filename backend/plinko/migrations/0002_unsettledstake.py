import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('plinko', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='UnsettledStake',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('round_id', models.UUIDField(unique=True)),
                ('token_id', models.PositiveIntegerField()),
                ('balance_tier', models.CharField(choices=[('MAIN', 'Main'), ('BONUS', 'Bonus')], max_length=5)),
                ('bet_amount', models.DecimalField(decimal_places=8, max_digits=28)),
                ('status', models.CharField(choices=[('DEDUCT_UNKNOWN', 'Deduct unknown'), ('REFUND_PENDING', 'Refund pending'), ('REFUNDED', 'Refunded'), ('NOT_TAKEN', 'Not taken')], default='DEDUCT_UNKNOWN', max_length=16)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='plinko_unsettled_stakes', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='unsettled_status_created')],
            },
        ),
    ]
