from __future__ import annotations

import pytest

from dynorm.core.errors import NotFoundError, ValidationError
from dynorm.core.modules.loader import load_manifest_dict
from dynorm.core.modules.models import (
    AddFieldImpact,
    AddIndexImpact,
    AddRelationImpact,
    CreateModelTableImpact,
    ExtendEnumImpact,
    FieldDefinition,
    ModelDefinition,
    ModuleDescriptor,
)
from dynorm.core.query.models import FilterCondition, FilterOp, QueryOptions

MOD = ModuleDescriptor(name="contacts", version="1.0.0")


def _contact_model() -> ModelDefinition:
    return ModelDefinition.model_validate(
        {
            "name": "contact",
            "fields": [
                {"name": "name", "type": "string", "required": True},
                {"name": "kind", "type": "selection", "options": ["person"]},
                {"name": "active", "type": "boolean", "required": True, "defaultValue": "true"},
                {"name": "score", "type": "number", "required": True, "defaultValue": "10"},
            ],
        }
    )


def test_init_is_repeatable(any_store):
    any_store.init()
    any_store.init()
    assert any_store.list_models() == []


def test_register_model_upserts(any_store):
    any_store.register_model(_contact_model())
    changed = _contact_model()
    changed.fields.append(FieldDefinition(name="email"))
    any_store.register_model(changed)
    models = any_store.list_models()
    assert [m.name for m in models] == ["contact"]
    assert models[0].get_field("email") is not None
    assert models[0].module == "contact"
    assert any_store.model_exists("contact")
    assert not any_store.model_exists("nope")


def test_register_model_rejects_unsafe_name(any_store):
    with pytest.raises(ValidationError):
        any_store.register_model(ModelDefinition(name="drop;table"))


def test_add_field_is_idempotent_and_overwrites_changed_definitions(any_store):
    any_store.register_model(_contact_model())
    impact = AddFieldImpact(target_model="contact", field=FieldDefinition(name="email"))
    any_store.apply_impact(MOD, impact)
    any_store.apply_impact(MOD, impact)
    model = any_store.get_model_definition("contact")
    assert model.field_names().count("email") == 1

    any_store.apply_impact(MOD, AddFieldImpact(target_model="contact", field=FieldDefinition(name="email", type="text", length=200)))
    model = any_store.get_model_definition("contact")
    assert model.field_names().count("email") == 1
    assert model.get_field("email").length == 200
    assert model.field_names().index("email") == 4


def test_add_relation_forces_relation_type(any_store):
    any_store.register_model(_contact_model())
    any_store.apply_impact(
        MOD,
        AddRelationImpact.model_validate({"targetModel": "contact", "fieldObject": {"name": "company_id", "relation": {"model": "company"}}}),
    )
    fd = any_store.get_model_definition("contact").get_field("company_id")
    assert fd.type.value == "relation"
    assert fd.relation.model == "company"


def test_impact_on_unknown_model_raises_not_found(any_store):
    with pytest.raises(NotFoundError):
        any_store.apply_impact(MOD, CreateModelTableImpact(target_model="ghost"))


def test_extend_enum(any_store):
    any_store.register_model(_contact_model())
    any_store.apply_impact(MOD, ExtendEnumImpact(target_model="contact", field="kind", values=["company", "person", "company"]))
    any_store.apply_impact(MOD, ExtendEnumImpact(target_model="contact", field="kind", values=["company"]))
    assert any_store.get_model_definition("contact").get_field("kind").options == ["person", "company"]
    with pytest.raises(NotFoundError):
        any_store.apply_impact(MOD, ExtendEnumImpact(target_model="contact", field="missing", values=["x"]))


def test_add_index_recorded_once(any_store):
    any_store.register_model(_contact_model())
    any_store.apply_impact(MOD, AddIndexImpact(target_model="contact", field="name"))
    any_store.apply_impact(MOD, AddIndexImpact(target_model="contact", field="name"))
    any_store.apply_impact(MOD, AddIndexImpact(target_model="contact", field="id"))
    indexes = any_store.get_model_definition("contact").metadata["indexes"]
    assert [ix["name"] for ix in indexes] == ["idx_contact_name", "idx_contact_id"]
    with pytest.raises(NotFoundError):
        any_store.apply_impact(MOD, AddIndexImpact(target_model="contact", field="missing"))


def test_create_model_table_is_repeatable(any_store):
    any_store.register_model(_contact_model())
    any_store.apply_impact(MOD, CreateModelTableImpact(target_model="contact"))
    any_store.apply_impact(MOD, CreateModelTableImpact(target_model="contact"))
    assert any_store.get_model_definition("contact").metadata["table_created"] is True


def test_managed_schema_and_change_log(any_store):
    model = _contact_model()
    any_store.register_model(model)
    assert any_store.upsert_managed_schema(model, MOD).ok
    assert any_store.get_managed_schema("contact").name == "contact"
    assert any_store.get_managed_schema("nope") is None

    impact = AddFieldImpact(target_model="contact", field=FieldDefinition(name="email"))
    assert any_store.log_schema_change("contact", impact, MOD, "applyImpact").ok
    changes = any_store.list_schema_changes("contact")
    assert len(changes) == 1
    assert changes[0]["operation"] == "applyImpact"
    assert changes[0]["module"] == "contacts"
    assert changes[0]["change"]["action"] == "addField"
    assert changes[0]["change"]["targetModel"] == "contact"
    assert any_store.list_schema_changes("other") == []


def test_transactions_roll_back_schema_and_records(any_store):
    any_store.register_model(_contact_model())
    any_store.create_record("contact", {"name": "kept"})

    assert any_store.begin_transaction().ok
    assert any_store.begin_transaction().failed
    any_store.register_model(ModelDefinition(name="temp"))
    any_store.apply_impact(MOD, AddFieldImpact(target_model="contact", field=FieldDefinition(name="email")))
    any_store.create_record("contact", {"name": "dropped"})
    assert any_store.rollback().ok

    assert not any_store.model_exists("temp")
    assert any_store.get_model_definition("contact").get_field("email") is None
    assert [r.get("name") for r in any_store.get_records("contact")] == ["kept"]
    assert any_store.commit().failed
    assert any_store.rollback().failed


def test_transactions_commit(any_store):
    any_store.begin_transaction()
    any_store.register_model(_contact_model())
    any_store.create_record("contact", {"name": "a"})
    assert any_store.commit().ok
    assert len(any_store.get_records("contact")) == 1


def test_create_record_applies_defaults_and_checks_required(any_store):
    any_store.register_model(_contact_model())
    rec = any_store.create_record("contact", {"name": "Ada"})
    assert rec.data == {"name": "Ada", "active": True, "score": 10}
    assert rec.model == "contact"
    assert rec.id

    with pytest.raises(ValidationError) as ei:
        any_store.create_record("contact", {"kind": "person"})
    assert "Missing required fields: name" in str(ei.value)

    with pytest.raises(NotFoundError):
        any_store.create_record("ghost", {})


def test_record_crud(any_store):
    any_store.register_model(_contact_model())
    rec = any_store.create_record("contact", {"name": "Ada"})

    got = any_store.get_record_by_id(rec.id)
    assert got.get("name") == "Ada"
    assert got.get("id") == rec.id
    assert any_store.get_record_by_id("missing") is None

    updated = any_store.update_record(rec.id, {"name": "Ada L."})
    assert updated.data == {"name": "Ada L."}
    assert updated.updated_at >= rec.updated_at

    any_store.delete_record(rec.id)
    assert any_store.get_record_by_id(rec.id) is None
    with pytest.raises(NotFoundError):
        any_store.delete_record(rec.id)
    with pytest.raises(NotFoundError):
        any_store.update_record(rec.id, {"name": "x"})


def test_upsert_record(any_store):
    any_store.register_model(_contact_model())
    created = any_store.upsert_record("contact", "c-1", {"name": "first"})
    assert created.id == "c-1"
    updated = any_store.upsert_record("contact", "c-1", {"name": "second"})
    assert updated.id == "c-1"
    assert any_store.get_record_by_id("c-1").get("name") == "second"
    fresh = any_store.upsert_record("contact", None, {"name": "third"})
    assert fresh.id != "c-1"
    assert len(any_store.get_records("contact")) == 2


def test_delete_records_by_filter(any_store):
    any_store.register_model(_contact_model())
    for n, s in [("a", 1), ("b", 5), ("c", 9)]:
        any_store.create_record("contact", {"name": n, "score": s})
    removed = any_store.delete_records("contact", QueryOptions(where=[FilterCondition("score", FilterOp.gt, 3)]))
    assert removed == 2
    assert [r.get("name") for r in any_store.get_records("contact")] == ["a"]
    assert any_store.delete_records("contact") == 1
    assert any_store.get_records("contact") == []


def test_get_records_unknown_model(any_store):
    with pytest.raises(NotFoundError):
        any_store.get_records("ghost")


def test_installed_manifest_queryable(any_store):
    from dynorm.core.modules.manager import ModuleManager

    manifest = load_manifest_dict(
        {
            "module": {"name": "contacts", "version": "1.0.0"},
            "models": [{"name": "contact", "fields": [{"name": "name", "required": True}]}],
            "impacts": [{"action": "addIndex", "targetModel": "contact", "field": "name"}],
        }
    )
    ModuleManager().install([manifest], any_store)
    any_store.create_record("contact", {"name": "Ada"})
    assert [r.get("name") for r in any_store.get_records("contact")] == ["Ada"]
