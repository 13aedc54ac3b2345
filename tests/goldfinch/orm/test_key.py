import pytest
from sqlalchemy.orm import Session

from goldfinch.exceptions import MissingPrimaryKeyError
from goldfinch.orm.key import KeyResolver, default_key_resolver, resolve_primary_key
from tests.models import Author, Enrollment, PlainRecord


class SpecialRecord(PlainRecord):
    pass


@pytest.fixture
def resolver() -> KeyResolver:
    return KeyResolver()


def test_single_column_key_is_scalar(resolver: KeyResolver):
    assert resolver.resolve(Author(id=7, name="Ada")) == 7


def test_composite_key_is_tuple_in_column_order(resolver: KeyResolver):
    assert resolver.resolve(Enrollment(course_id="c1", student_id="s1")) == ("s1", "c1")


def test_unassigned_key_resolves_to_none(resolver: KeyResolver):
    assert resolver.resolve(Author(name="Ada")) is None


def test_unmapped_type_without_extractor_raises(resolver: KeyResolver):
    with pytest.raises(MissingPrimaryKeyError, match="PlainRecord"):
        resolver.resolve(PlainRecord(1))


def test_registered_extractor_applies_to_subclasses(resolver: KeyResolver):
    resolver.register(PlainRecord, lambda record: record.record_id)

    assert resolver.is_registered(SpecialRecord)
    assert resolver.resolve(SpecialRecord(3)) == 3

    resolver.unregister(PlainRecord)
    assert not resolver.is_registered(SpecialRecord)


def test_registered_extractor_overrides_mapper(resolver: KeyResolver):
    resolver.register(Author, lambda author: f"author:{author.id}")

    assert resolver.resolve(Author(id=1, name="Ada")) == "author:1"


def test_session_identity_wins_over_changed_attributes(resolver: KeyResolver, db_session: Session):
    author = Author(name="Ada")
    db_session.add(author)
    db_session.flush()
    original_id = author.id

    author.id = original_id + 100

    assert resolver.resolve(author, db_session) == original_id
    assert resolver.resolve(author) == original_id + 100


def test_detached_expired_instance_uses_identity(resolver: KeyResolver, db_session: Session):
    author = Author(name="Ada")
    db_session.add(author)
    db_session.commit()
    author_id = db_session.get(Author, author.id).id
    db_session.expire(author)
    db_session.expunge(author)

    assert resolver.resolve(author) == author_id


def test_module_level_resolver():
    assert resolve_primary_key(Author(id=5, name="Ada")) == 5
    assert not default_key_resolver.is_registered(Author)
