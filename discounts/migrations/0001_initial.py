from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Coupon",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("description", models.CharField(blank=True, max_length=255)),
                (
                    "discount_type",
                    models.CharField(choices=[("percentage", "Percentage"), ("fixed", "Fixed amount")], max_length=16),
                ),
                ("value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("minimum_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("maximum_discount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("ends_at", models.DateTimeField(blank=True, null=True)),
                ("usage_limit", models.PositiveIntegerField(blank=True, null=True)),
                ("used_count", models.PositiveIntegerField(default=0)),
                ("conditions", models.JSONField(blank=True, default=list)),
            ],
            options={
                "ordering": ["code"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("value__gt", 0)), name="coupon_value_positive"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("discount_type", "percentage"), _negated=True),
                            ("value__lte", 100),
                            _connector="OR",
                        ),
                        name="coupon_percentage_le_100",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("usage_limit__isnull", True), ("used_count__lte", models.F("usage_limit")), _connector="OR"
                        ),
                        name="coupon_usage_within_limit",
                    ),
                ],
            },
        ),
    ]
