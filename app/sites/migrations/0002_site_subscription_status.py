from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("sites", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="site",
            name="subscription_status",
            field=models.CharField(
                blank=True,
                choices=[("active", "Active"), ("unpaid", "Unpaid"), ("canceled", "Canceled")],
                help_text="Hosting subscription state",
                max_length=20,
                null=True,
            ),
        ),
    ]
