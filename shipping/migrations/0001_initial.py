import django.db.models.deletion
from django.db import migrations, models

STATUS_CHOICES = [("active", "Active"), ("inactive", "Inactive")]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ShippingZone",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, max_length=500)),
                ("countries", models.JSONField(default=list)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="active", max_length=16)),
                ("priority", models.IntegerField(default=0)),
                ("is_default", models.BooleanField(default=False)),
            ],
            options={
                "ordering": ["-priority", "name"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_default", True), ("status", "active")),
                        fields=("is_default",),
                        name="single_active_default_zone",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ShippingMethod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, max_length=500)),
                ("carrier", models.CharField(blank=True, max_length=50)),
                (
                    "strategy",
                    models.CharField(
                        choices=[
                            ("flat_rate", "Flat rate"),
                            ("weight_based", "Weight based"),
                            ("price_based", "Price based"),
                            ("quantity_based", "Quantity based"),
                            ("free", "Free"),
                            ("calculated", "Calculated"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("free_shipping_threshold", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("min_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("max_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("min_weight", models.DecimalField(blank=True, decimal_places=3, max_digits=10, null=True)),
                ("max_weight", models.DecimalField(blank=True, decimal_places=3, max_digits=10, null=True)),
                ("estimated_days_min", models.PositiveIntegerField(default=1)),
                ("estimated_days_max", models.PositiveIntegerField(default=5)),
                ("tracking_available", models.BooleanField(default=False)),
                ("signature_required", models.BooleanField(default=False)),
                ("insurance_available", models.BooleanField(default=False)),
                ("taxable", models.BooleanField(default=False)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="active", max_length=16)),
                ("sort_order", models.IntegerField(default=0)),
                ("api_provider", models.CharField(blank=True, max_length=50)),
                ("api_service_code", models.CharField(blank=True, max_length=50)),
                ("zones", models.ManyToManyField(blank=True, related_name="methods", to="shipping.shippingzone")),
            ],
            options={
                "ordering": ["sort_order", "name"],
                "indexes": [models.Index(fields=["status", "sort_order"], name="shipping_sh_status_02e26c_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("estimated_days_min__lte", models.F("estimated_days_max"))),
                        name="shipping_days_min_le_max",
                    ),
                    models.CheckConstraint(condition=models.Q(("cost__gte", 0)), name="shipping_cost_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ShippingRateTier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("minimum", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("maximum", models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True)),
                ("rate", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "method",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="tiers", to="shipping.shippingmethod"
                    ),
                ),
            ],
            options={
                "ordering": ["method", "minimum"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("minimum__gte", 0)), name="tier_minimum_non_negative"),
                    models.CheckConstraint(condition=models.Q(("rate__gte", 0)), name="tier_rate_non_negative"),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("maximum__isnull", True), ("minimum__lt", models.F("maximum")), _connector="OR"
                        ),
                        name="tier_min_lt_max",
                    ),
                ],
            },
        ),
    ]
