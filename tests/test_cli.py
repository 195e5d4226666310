from __future__ import annotations

from typer.testing import CliRunner

from iwent import cli, crud
from iwent.seed import seed_fake_data

runner = CliRunner()


def test_inbox_command_lists_requests_and_exclusions(session):
    alice = crud.create_user(session, name="Alice")
    bob = crud.create_user(session, name="Bob")
    carol = crud.create_user(session, name="Carol")
    pending = crud.send_friend_request(session, from_user_id=bob.id, to_user_id=alice.id)
    rejected = crud.send_friend_request(session, from_user_id=carol.id, to_user_id=alice.id)
    crud.respond_to_friend_request(session, rejected.id, False, user_id=alice.id)
    session.commit()
    alice_id, pending_id, rejected_id = alice.id, pending.id, rejected.id

    result = runner.invoke(cli.app, ["inbox", alice_id, "--explain"])
    assert result.exit_code == 0, result.output
    assert f"friend request {pending_id}" in result.output
    assert f"excluded friend request {rejected_id}: rejected" in result.output


def test_inbox_command_unknown_user():
    result = runner.invoke(cli.app, ["inbox", "ghost"])
    assert result.exit_code == 1


def test_archive_command():
    result = runner.invoke(cli.app, ["archive"])
    assert result.exit_code == 0
    assert "Archive complete" in result.output


def test_seed_fake_data_populates_everything():
    stats = seed_fake_data(user_count=4, event_count=3, requests_per_event=2)
    assert stats["users"] == 4
    assert stats["events"] == 3
    assert stats["event_requests"] <= 6
