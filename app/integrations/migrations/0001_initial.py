from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PaymentIntegration",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "tenant_id",
                    models.CharField(
                        help_text="Tenant that owns this payment integration",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("card", "Card (Stripe)"),
                            ("wallet", "Wallet (PayPal)"),
                            ("terminal-pos", "Terminal POS (Square)"),
                        ],
                        help_text="Payment provider this tenant routes payments to",
                        max_length=32,
                    ),
                ),
                (
                    "enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether payments may be routed to this provider",
                    ),
                ),
                (
                    "credentials",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Encrypted credential blob (Fernet token)",
                    ),
                ),
                (
                    "settings",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Provider settings such as test_mode and webhook_url",
                    ),
                ),
                (
                    "last_tested_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the connection was last tested",
                        null=True,
                    ),
                ),
                (
                    "last_test_succeeded",
                    models.BooleanField(
                        blank=True,
                        help_text="Outcome of the last connection test",
                        null=True,
                    ),
                ),
                (
                    "last_error",
                    models.TextField(
                        blank=True,
                        help_text="Error from the last failed connection test",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Integration",
                "verbose_name_plural": "Payment Integrations",
                "ordering": ["-created_at"],
            },
        ),
    ]
