"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-organization: Create a new organization
- flask quote-stats: Print quote figures of an organization
"""

import click
import re
from quotebuilder.database import create_all, get_session
from quotebuilder.models import Organization
from quotebuilder.services.quote_service import get_quote_stats


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-organization')
    @click.option('--name', prompt=True, help='Organization display name')
    @click.option('--slug', prompt=True, help='URL-safe identifier')
    def create_organization(name, slug):
        """Create a new organization that owns products, customers and quotes."""
        if not re.match(r'^[a-z0-9]+(?:-[a-z0-9]+)*$', slug):
            click.echo(click.style('Invalid slug. Use lowercase letters, digits and dashes.', fg='red'))
            return

        db_session = get_session()
        existing = db_session.query(Organization).filter_by(slug=slug).first()
        if existing:
            click.echo(click.style(f'An organization with slug {slug} already exists (id={existing.id}).', fg='red'))
            return

        try:
            organization = Organization(name=name.strip(), slug=slug, active=True)
            db_session.add(organization)
            db_session.commit()

            click.echo(click.style('Organization created.', fg='green', bold=True))
            click.echo(f'   Name: {organization.name}')
            click.echo(f'   ID: {organization.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error creating organization: {str(e)}', fg='red'))

    @app.cli.command('quote-stats')
    @click.option('--organization-id', required=True, type=int, help='Organization ID')
    def quote_stats(organization_id):
        """Print quote counts per status and conversion figures."""
        stats = get_quote_stats(get_session(), organization_id)

        click.echo(f"Quotes: {stats['total_quotes']} ({stats['quotes_this_month']} this month)")
        for status, count in stats['status_counts'].items():
            click.echo(f'   {status}: {count}')
        click.echo(f"Total value: {stats['total_value']}")
        click.echo(f"Accepted value: {stats['accepted_value']}")
        click.echo(f"Conversion rate: {stats['conversion_rate']} %")
