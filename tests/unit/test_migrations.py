"""
Schema migrations stay in step with the models.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.db import connection


@pytest.mark.django_db
class TestMigrations:

    def test_no_model_changes_without_migration(self):
        out = StringIO()
        call_command('makemigrations', 'patientflow', '--check', '--dry-run', stdout=out)
        assert 'No changes detected' in out.getvalue()

    def test_tables_created_by_migrate(self):
        tables = set(connection.introspection.table_names())
        assert {
            'patients', 'test_orders', 'prescriptions', 'invoices', 'invoice_items', 'notifications',
        } <= tables
