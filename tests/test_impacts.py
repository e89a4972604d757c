from __future__ import annotations

import pytest

from dynorm.core.errors import InvalidIdentifierError, ValidationError
from dynorm.core.modules.models import AddFieldImpact, AddIndexImpact, CreateModelTableImpact, FieldDefinition, ModelDefinition
from dynorm.core.storage.impacts import apply_impact_to_model


def _model() -> ModelDefinition:
    return ModelDefinition(name="contact", fields=[FieldDefinition(name="name")])


def test_input_model_is_not_modified():
    model = _model()
    out = apply_impact_to_model(model, AddFieldImpact(target_model="contact", field=FieldDefinition(name="email")))
    assert out.changed
    assert model.field_names() == ["name"]
    assert out.model.field_names() == ["name", "email"]


def test_equal_field_is_a_no_op():
    out = apply_impact_to_model(_model(), AddFieldImpact(target_model="contact", field=FieldDefinition(name="name")))
    assert not out.changed


def test_target_mismatch_rejected():
    with pytest.raises(ValidationError):
        apply_impact_to_model(_model(), CreateModelTableImpact(target_model="other"))


def test_identifiers_rechecked_at_apply_time():
    impact = AddFieldImpact.model_construct(target_model="contact", field=FieldDefinition(name="bad name"), action="addField")
    with pytest.raises(InvalidIdentifierError):
        apply_impact_to_model(_model(), impact)


def test_add_index_outcome_carries_index_entry():
    out = apply_impact_to_model(_model(), AddIndexImpact(target_model="contact", field="name", unique=True))
    assert out.index == {"name": "idx_contact_name", "field": "name", "unique": True}
    again = apply_impact_to_model(out.model, AddIndexImpact(target_model="contact", field="name", unique=True))
    assert again.index is None
    assert not again.changed
