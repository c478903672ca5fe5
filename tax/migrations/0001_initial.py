import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="TaxRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, max_length=500)),
                (
                    "rate",
                    models.DecimalField(
                        decimal_places=4,
                        max_digits=7,
                        validators=[
                            django.core.validators.MinValueValidator(0),
                            django.core.validators.MaxValueValidator(100),
                        ],
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[("inclusive", "Inclusive"), ("exclusive", "Exclusive")],
                        default="exclusive",
                        max_length=16,
                    ),
                ),
                ("country", models.CharField(db_index=True, max_length=2)),
                ("state", models.CharField(blank=True, db_index=True, max_length=40)),
                ("city", models.CharField(blank=True, max_length=80)),
                ("postal_codes", models.JSONField(blank=True, default=list)),
                ("apply_to_shipping", models.BooleanField(default=False)),
                ("apply_to_digital", models.BooleanField(default=True)),
                (
                    "tax_class",
                    models.CharField(
                        choices=[("standard", "Standard"), ("reduced", "Reduced"), ("zero", "Zero"), ("exempt", "Exempt")],
                        db_index=True,
                        default="standard",
                        max_length=16,
                    ),
                ),
                ("priority", models.IntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                ("effective_from", models.DateTimeField(blank=True, null=True)),
                ("effective_to", models.DateTimeField(blank=True, null=True)),
                ("compound", models.BooleanField(default=False)),
                (
                    "applicable_categories",
                    models.ManyToManyField(blank=True, related_name="applicable_tax_rates", to="catalog.category"),
                ),
                (
                    "excluded_categories",
                    models.ManyToManyField(blank=True, related_name="excluded_tax_rates", to="catalog.category"),
                ),
            ],
            options={
                "ordering": ["country", "state", "city", "-priority"],
                "indexes": [
                    models.Index(fields=["country", "state", "status"], name="tax_taxrate_country_441d4f_idx"),
                    models.Index(fields=["status", "priority"], name="tax_taxrate_status_ae0c59_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("rate__gte", 0), ("rate__lte", 100)), name="tax_rate_between_0_and_100"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("effective_from__isnull", True),
                            ("effective_to__isnull", True),
                            ("effective_from__lte", models.F("effective_to")),
                            _connector="OR",
                        ),
                        name="tax_rate_effective_window",
                    ),
                ],
            },
        ),
    ]
