import click
from flask.cli import with_appcontext
from mediconnect.extensions import db
from mediconnect.models import Doctor, Chemist


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database initialized successfully!")


def _create_staff(model, label, username, full_name, contact):
    if model.query.filter_by(username=username).first():
        raise click.ClickException(f"{label} '{username}' already exists")

    account = model(username=username, full_name=full_name, contact=contact)
    db.session.add(account)
    db.session.commit()
    click.echo(f"Created {label.lower()} '{username}' (id {account.id})")


@click.command('create-doctor')
@click.argument('username')
@click.option('--full-name', default=None, help="Name shown on prescriptions.")
@click.option('--contact', default=None)
@with_appcontext
def create_doctor_command(username, full_name, contact):
    """Provision a doctor account."""
    _create_staff(Doctor, 'Doctor', username, full_name, contact)


@click.command('create-chemist')
@click.argument('username')
@click.option('--full-name', default=None)
@click.option('--contact', default=None)
@with_appcontext
def create_chemist_command(username, full_name, contact):
    """Provision a chemist account."""
    _create_staff(Chemist, 'Chemist', username, full_name, contact)


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_doctor_command)
    app.cli.add_command(create_chemist_command)
