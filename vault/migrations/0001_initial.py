from django.db import migrations, models

import vault.models


STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('completed', 'Completed'),
    ('failed', 'Failed'),
    ('skipped', 'Skipped'),
    ('unknown', 'Unknown'),
]


def status_field():
    return models.CharField(
        blank=True,
        choices=STATUS_CHOICES,
        db_index=True,
        default='pending',
        max_length=20,
        null=True,
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='CaptureItem',
            fields=[
                (
                    'id',
                    models.CharField(
                        default=vault.models.generate_record_id,
                        editable=False,
                        max_length=32,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    'media_type',
                    models.CharField(
                        choices=[('video', 'Video'), ('image', 'Image')],
                        default='video',
                        max_length=10,
                    ),
                ),
                ('title', models.CharField(blank=True, max_length=500)),
                ('page_url', models.URLField(blank=True, db_index=True, max_length=2048)),
                ('file_url', models.URLField(blank=True, max_length=2048)),
                ('backup_path', models.CharField(blank=True, max_length=500, null=True)),
                ('thumbnail_path', models.CharField(blank=True, max_length=500, null=True)),
                ('preview_path', models.CharField(blank=True, max_length=500, null=True)),
                ('hls_path', models.CharField(blank=True, max_length=500, null=True)),
                ('duration', models.FloatField(blank=True, null=True)),
                ('is_short_video', models.BooleanField(default=False)),
                ('hls_ready', models.BooleanField(default=False)),
                ('preview_ready', models.BooleanField(default=False)),
                ('download_status', status_field()),
                ('thumbnail_status', status_field()),
                ('preview_status', status_field()),
                ('hls_status', status_field()),
                (
                    'original_status',
                    models.CharField(
                        blank=True,
                        choices=[
                            ('missing', 'Missing'),
                            ('exists', 'Exists'),
                            ('cleaned', 'Cleaned'),
                        ],
                        db_index=True,
                        default='missing',
                        max_length=20,
                        null=True,
                    ),
                ),
                ('download_retries', models.IntegerField(default=0)),
                ('download_error', models.TextField(blank=True, null=True)),
                ('last_processed_at', models.DateTimeField(blank=True, null=True)),
                ('last_error_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='MaintenanceState',
            fields=[
                ('key', models.CharField(max_length=100, primary_key=True, serialize=False)),
                ('data', models.JSONField(default=dict)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
