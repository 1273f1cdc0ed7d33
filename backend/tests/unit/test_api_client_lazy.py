import pytest

import app.lib.api_client as api_client


def test_clients_are_lazy_proxies():
    assert isinstance(api_client.supabase_admin, api_client._LazySupabaseClient)
    assert isinstance(api_client.supabase, api_client._LazySupabaseClient)


def test_public_client_requires_url(monkeypatch):
    monkeypatch.setattr(api_client, "url", "")
    monkeypatch.setattr(api_client, "key", "anon")
    monkeypatch.setattr(api_client.supabase, "_client", None)

    with pytest.raises(RuntimeError, match="SUPABASE_URL is required"):
        api_client.supabase.table("journals")


def test_public_client_requires_key(monkeypatch):
    monkeypatch.setattr(api_client, "url", "https://example.supabase.co")
    monkeypatch.setattr(api_client, "key", "")
    monkeypatch.setattr(api_client.supabase, "_client", None)

    with pytest.raises(RuntimeError, match="SUPABASE_ANON_KEY or SUPABASE_KEY is required"):
        api_client.supabase.auth


def test_admin_client_requires_some_key(monkeypatch):
    monkeypatch.setattr(api_client, "url", "https://example.supabase.co")
    monkeypatch.setattr(api_client, "key", "")
    monkeypatch.setattr(api_client, "service_role_key", "")
    monkeypatch.setattr(api_client.supabase_admin, "_client", None)

    with pytest.raises(RuntimeError, match="SUPABASE_SERVICE_ROLE_KEY"):
        api_client.supabase_admin.table("journals")
