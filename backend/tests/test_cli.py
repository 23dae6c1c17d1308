"""
Flask CLI commands.
"""

from pharmasys.extensions import db
from pharmasys.models import SecurityEvent, User
from pharmasys.services import auth_service


def test_system_init_seeds_default_users(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert {u.username for u in auth_service.list_users()} == {"admin", "pharmacist", "doctor"}

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    assert len(auth_service.list_users()) == 3


def test_set_role_is_audited_as_cli(app, pharmacist_user):
    result = app.test_cli_runner().invoke(args=["users", "set-role", "pharma", "admin"])
    assert result.exit_code == 0, result.output
    assert "pharmacist -> admin" in result.output

    assert db.session.get(User, pharmacist_user.id).role == "admin"
    event = db.session.query(SecurityEvent).filter_by(event_type="ROLE_CHANGE").one()
    assert "changed_by=cli" in event.reason


def test_set_role_unknown_user(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "set-role", "ghost", "admin"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_disable_mfa(app, pharmacist_user):
    pharmacist_user.mfa_secret = "JBSWY3DPEHPK3PXP"
    pharmacist_user.mfa_enabled = True
    pharmacist_user.email_mfa_enabled = True
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["users", "disable-mfa", "pharma"])
    assert result.exit_code == 0, result.output

    user = db.session.get(User, pharmacist_user.id)
    assert user.requires_mfa is False
    assert user.mfa_secret is None


def test_users_list_shows_lockouts(app, pharmacist_user):
    result = app.test_cli_runner().invoke(args=["users", "list", "--lockouts"])
    assert result.exit_code == 0
    assert "pharma" in result.output


def test_create_user_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--username", "bob", "--name", "Bob", "--email", "bob@pharmasys.test",
        "--password", "short", "--role", "admin",
    ])
    assert result.exit_code != 0
    assert auth_service.find_user("bob") is None
