import pytest

from emberorm import Entity, Resolved, RoleSchema, UnmappedField, Unresolved
from emberorm.core import ObjectMapper, is_loaded, related_entities, unwrap


class Book:
    def __init__(self, title):
        self.id = None
        self.title = title


def test_entity_exposes_only_declared_keys():
    entity = Entity("book", ["id", "title"], {"title": "Dune"})
    assert entity.title == "Dune"
    assert entity["id"] is None
    assert entity.get("missing", "fallback") == "fallback"
    assert entity.to_dict() == {"id": None, "title": "Dune"}
    assert list(entity) == ["id", "title"]

    with pytest.raises(UnmappedField) as excinfo:
        entity.author = "Herbert"
    assert excinfo.value.field == "author"
    with pytest.raises(AttributeError):
        entity.author


def test_entities_compare_by_identity():
    first = Entity("book", ["id"], {"id": 1})
    second = Entity("book", ["id"], {"id": 1})
    assert first != second
    assert len({first, second}) == 2
    assert "id=1" in repr(first)


def test_object_mapper_round_trip():
    role = RoleSchema("book", ["id", "title"], entity_class=Book)
    mapper = role.mapper
    assert isinstance(mapper, ObjectMapper)

    book = mapper.init({"id": 3, "title": "Emma"}, "book")
    assert isinstance(book, Book)
    assert mapper.extract(book) == {"id": 3, "title": "Emma"}
    mapper.hydrate(book, {"title": "Persuasion"})
    assert mapper.fetch_fields(book) == {"id": 3, "title": "Persuasion"}
    with pytest.raises(UnmappedField):
        mapper.hydrate(book, {"isbn": "123"})


def test_custom_mapper_factory_is_used():
    class RecordingMapper(ObjectMapper):
        pass

    role = RoleSchema("book", ["id", "title"], entity_class=Book, mapper_class=RecordingMapper)
    assert isinstance(role.mapper, RecordingMapper)
    assert role.mapper is role.mapper


def test_reference_helpers():
    first, second = Entity("book", ["id"]), Entity("book", ["id"])
    pending = Unresolved("book", {"id": 1})
    assert not is_loaded(pending)
    assert is_loaded(None)
    assert unwrap(Resolved(first)) is first
    assert related_entities(Resolved([first, None, second])) == [first, second]
    assert related_entities(first) == [first]
    assert related_entities(None) == []
    with pytest.raises(ValueError):
        unwrap(pending)
