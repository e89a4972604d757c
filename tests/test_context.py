from __future__ import annotations

import pytest

from dynorm.core.client import DynamicClient
from dynorm.core.context import DynamicContext
from dynorm.core.errors import NotFoundError, ValidationError
from dynorm.core.modules.manager import ModuleManager
from dynorm.core.modules.models import FieldType, ModelDefinition
from dynorm.core.query.models import JoinDefinition, QueryOptions
from dynorm.core.storage.memory import MemoryStore
from .helpers.fakes import WriteOnlySchemaProvider
from .helpers.manifests import add_field_impact, build_field, build_manifest, build_model, write_module_json


def _client(provider=None) -> DynamicClient:
    client = DynamicClient(provider)
    (
        client.define_model("contact")
        .module("crm")
        .field("name", "string", required=True)
        .field("active", "boolean", required=True, default_value=True)
        .build()
    )
    (
        client.define_model("product")
        .field("name", required=True)
        .field("price", "number", required=True, default_value="2.5")
        .field("contact_id", "relation", relation_model="contact", on_delete="cascade")
        .build()
    )
    return client


def test_builder_registers_models():
    client = _client()
    models = {m.name: m for m in client.context.get_models()}
    assert set(models) == {"contact", "product"}
    assert models["contact"].module == "crm"
    fields = client.context.get_fields("product")
    assert [f.name for f in fields] == ["name", "price", "contact_id"]
    assert fields[2].type == FieldType.relation
    assert fields[2].relation.on_delete == "cascade"
    assert client.context.get_fields("ghost") is None


def test_create_applies_typed_defaults_and_rejects_missing():
    client = _client()
    p = client.create("product", {"name": "pen"})
    assert p.data["price"] == 2.5
    c = client.create("contact", {"name": "Ada"})
    assert c.data["active"] is True
    with pytest.raises(ValidationError) as ei:
        client.create("contact", {})
    assert "name" in str(ei.value)
    with pytest.raises(NotFoundError):
        client.create("ghost", {"x": 1})


def test_crud_round_trip():
    client = _client()
    c = client.create("contact", {"name": "Ada"})
    assert client.get_one("contact", c.id).get("name") == "Ada"
    assert client.get_one("product", c.id) is None
    client.update(c.id, {"name": "Ada L.", "active": False})
    assert client.get_one("contact", c.id).get("name") == "Ada L."
    client.delete(c.id)
    assert client.get_one("contact", c.id) is None
    with pytest.raises(NotFoundError):
        client.update(c.id, {"name": "x"})
    with pytest.raises(NotFoundError):
        client.delete(c.id)


def test_upsert_creates_then_updates():
    client = _client()
    first = client.upsert("contact", "c-1", {"name": "one"})
    assert first.id == "c-1"
    client.upsert("contact", "c-1", {"name": "two"})
    assert [r.get("name") for r in client.query("contact")] == ["two"]
    with pytest.raises(ValidationError):
        client.upsert("contact", "c-2", {})


def test_get_many_top_n_and_joins():
    client = _client()
    ada = client.create("contact", {"name": "Ada"})
    for n in ["c", "a", "b"]:
        client.create("product", {"name": n, "contact_id": ada.id})
    client.create("product", {"name": "z"})

    assert [r.get("name") for r in client.get_many("product", {"orderBy": "name", "limit": 2})] == ["a", "b"]
    opts = QueryOptions(order_by="name", order_desc=True)
    assert [r.get("name") for r in client.get_top_n("product", 2, opts)] == ["z", "c"]
    assert opts.limit is None

    join = JoinDefinition(source_model="product", target_model="contact", source_field="contact_id")
    joined = client.get_top_n("product", 10, QueryOptions(joins=[join], order_by="name"))
    assert [r.get("name") for r in joined] == ["a", "b", "c"]
    assert joined[0].get("contact.name") == "Ada"


def test_delete_many():
    client = _client()
    for n in ["a", "b", "c"]:
        client.create("product", {"name": n})
    assert client.delete_many("product", {"where": {"name": "b"}}) == 1
    assert [r.get("name") for r in client.query("product")] == ["a", "c"]


def test_context_delegates_to_provider_and_sees_installed_models():
    store = MemoryStore()
    ModuleManager().install([build_manifest("crm", models=[build_model("contact", [build_field("name", required=True)])])], store)
    ctx = DynamicContext(store)
    rec = ctx.create_record("contact", {"name": "Ada"})
    assert store.get_record_by_id(rec.id) is not None
    assert [f.name for f in ctx.get_fields("contact")] == ["name"]
    with pytest.raises(NotFoundError):
        ctx.get_records("ghost")


def test_register_model_publishes_to_provider():
    store = MemoryStore()
    ctx = DynamicContext(store)
    ctx.register_model(ModelDefinition(name="note"))
    assert store.model_exists("note")
    ctx.register_model({"name": "note", "fields": [{"name": "text"}]})
    assert store.get_model_definition("note").field_names() == ["text"]


def test_register_manifest_from_file(tmp_path):
    path = write_module_json(str(tmp_path / "crm"), build_manifest("crm", models=[build_model("contact")]))
    client = DynamicClient()
    manifest = client.register_manifest_from_file(path)
    assert manifest.name == "crm"
    assert client.context.get_models()[0].module == "crm"
    client.create("contact", {"name": "Ada"})
    assert len(client.query("contact")) == 1


def test_context_sees_fields_added_by_later_install():
    store = MemoryStore()
    ctx = DynamicContext(store)
    ctx.register_model({"name": "contact", "fields": [{"name": "name"}]})
    assert [f.name for f in ctx.get_fields("contact")] == ["name"]

    ext = build_manifest("crm_phone", impacts=[add_field_impact("contact", build_field("phone", required=True))])
    ModuleManager().install([ext], store)

    assert [f.name for f in ctx.get_fields("contact")] == ["name", "phone"]
    assert [f.name for f in ctx.get_models()[0].fields] == ["name", "phone"]
    with pytest.raises(ValidationError):
        ctx.create_record("contact", {"name": "Ada"})
    assert ctx.create_record("contact", {"name": "Ada", "phone": "555"}).get("phone") == "555"


def test_context_keeps_local_models_when_provider_cannot_read_schema():
    ctx = DynamicContext(WriteOnlySchemaProvider())
    ctx.register_model({"name": "note", "fields": [{"name": "text"}]})
    assert [f.name for f in ctx.get_fields("note")] == ["text"]
    assert [m.name for m in ctx.get_models()] == ["note"]
    assert ctx.get_fields("ghost") is None
