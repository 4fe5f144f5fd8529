from app.service.chat_service import ChatService
from scripts import purge_chat_user


def test_purge_removes_user_data(databases):
    with databases.session("acme") as db:
        service = ChatService(db)
        room_id = service.get_or_create_room_id(1, 2)
        service.create_message(room_id, 1, 2, "bye")

    counts = purge_chat_user.purge(databases, "acme", 1)

    assert counts == {"messages": 1, "memberships": 1, "rooms": 0}
    with databases.session("acme") as db:
        assert ChatService(db).get_chat_history(room_id) == []


def test_main_exit_codes(monkeypatch, tenant_config):
    real_databases = purge_chat_user.TenantDatabases
    monkeypatch.setattr(
        purge_chat_user, "TenantDatabases", lambda: real_databases(config=tenant_config, create_tables=True)
    )

    assert purge_chat_user.main(["acme", "1"]) == 0
    assert purge_chat_user.main(["initech", "1"]) == 1
