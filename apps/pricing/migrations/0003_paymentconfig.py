from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("pricing", "0002_couponredemption"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("bank", models.CharField(blank=True, max_length=120)),
                ("account", models.CharField(blank=True, max_length=80)),
                ("holder", models.CharField(blank=True, max_length=120)),
                ("qr_image", models.FileField(blank=True, null=True, upload_to="payment_qr/")),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "payment_config",
                "verbose_name": "Payment configuration",
                "verbose_name_plural": "Payment configuration",
            },
        ),
    ]
