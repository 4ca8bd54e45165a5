#!/usr/bin/env python3
"""
Import session templates into Snowflake.

Reads a JSON file of templates (the same format the mock store is seeded
from) and upserts each one into the session_templates table. Usage counters
of existing templates are left untouched.

Usage:
    python scripts/import_templates.py --file templates.json
    python scripts/import_templates.py --file templates.json --dry-run

Requires:
    - .env file with Snowflake credentials
"""

import os
import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from coachhub.api.dependencies import snowflake_config
from coachhub.config.settings import get_settings
from coachhub.core.scheduling import SessionTemplate, describe_rule
from coachhub.infrastructure.codecs import load_templates_file
from coachhub.infrastructure.snowflake.client import (
    SnowflakeConnectionError,
    get_snowflake_connection,
)
from coachhub.infrastructure.snowflake.repositories import SnowflakeTemplateRepository


def summarize(template: SessionTemplate) -> str:
    recurrence = describe_rule(template.recurrence_rule) if template.recurrence_rule else "one-off"
    return f"{template.name} ({template.default_duration} min, {recurrence})"


def import_templates(templates: list[SessionTemplate], dry_run: bool = False) -> bool:
    """Upsert templates into Snowflake. Returns True when every template was saved."""
    if dry_run:
        print("\n=== DRY RUN - No data will be written ===\n")
        for template in templates:
            print(f"Would import: {template.id} - {summarize(template)}")
        print(f"\nTotal: {len(templates)} templates")
        return True

    settings = get_settings()
    missing = [field for field in settings.validate_required_fields() if field.startswith("SNOWFLAKE")]
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        return False

    imported = 0
    errors = 0

    try:
        print(f"Connecting to Snowflake account: {settings.snowflake_account}")
        with get_snowflake_connection(snowflake_config(settings)) as conn:
            repository = SnowflakeTemplateRepository(conn)

            for template in templates:
                try:
                    repository.save_template(template)
                    imported += 1
                    print(f"[OK] Imported: {summarize(template)}")
                except Exception as e:
                    errors += 1
                    print(f"[ERR] Error importing {template.name}: {e}")

    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        return False

    print("\n=== Import Complete ===")
    print(f"Imported: {imported}")
    print(f"Errors: {errors}")

    return errors == 0


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Import session templates to Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Parse only, don\'t write')
    parser.add_argument('--file', default='templates.json', help='Template JSON file path')
    args = parser.parse_args()

    filepath = args.file
    if not os.path.exists(filepath):
        # Try relative to the project root
        filepath = Path(__file__).parent.parent / args.file

    if not os.path.exists(filepath):
        print(f"ERROR: Cannot find {args.file}")
        sys.exit(1)

    print(f"Loading templates from: {filepath}")
    try:
        templates = load_templates_file(filepath)
    except (ValueError, KeyError) as e:
        print(f"ERROR: Invalid template file: {e}")
        sys.exit(1)

    print(f"Found {len(templates)} templates")
    if not templates:
        print("ERROR: No templates found in file")
        sys.exit(1)

    recurring = sum(1 for template in templates if template.is_recurring)
    print(f"  recurring: {recurring}")
    print(f"  one-off: {len(templates) - recurring}")

    success = import_templates(templates, dry_run=args.dry_run)

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
