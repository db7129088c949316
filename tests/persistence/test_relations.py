import pytest

from emberorm import (
    Cascade,
    RelationDescriptor,
    RoleSchema,
    RunStatus,
    Schema,
    Session,
    StaleState,
    Status,
    Unresolved,
    UnscheduledDependency,
)
from emberorm.adapters import ConnectionConfig, SQLiteAdapter


def blog_schema(posts: Cascade = Cascade.CASCADE, author: Cascade = Cascade.PERSIST) -> Schema:
    return Schema(
        [
            RoleSchema(
                "author",
                ["id", "name"],
                relations=[RelationDescriptor.has_many("posts", "post", outer_key="author_id", cascade=posts)],
            ),
            RoleSchema(
                "post",
                ["id", "title", "author_id"],
                relations=[
                    RelationDescriptor.belongs_to("author", "author", cascade=author),
                    RelationDescriptor.many_to_many(
                        "tags",
                        "tag",
                        through="post_tag",
                        through_inner_key="post_id",
                        through_outer_key="tag_id",
                    ),
                ],
            ),
            RoleSchema("tag", ["id", "label"]),
        ]
    )


def create_tables(session: Session) -> None:
    session.execute_sql("CREATE TABLE IF NOT EXISTS author (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT)")
    session.execute_sql(
        "CREATE TABLE IF NOT EXISTS post ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT, author_id INTEGER REFERENCES author(id))"
    )
    session.execute_sql("CREATE TABLE IF NOT EXISTS tag (id INTEGER PRIMARY KEY AUTOINCREMENT, label TEXT UNIQUE)")
    session.execute_sql(
        "CREATE TABLE IF NOT EXISTS post_tag ("
        "post_id INTEGER NOT NULL REFERENCES post(id), "
        "tag_id INTEGER NOT NULL REFERENCES tag(id), "
        "PRIMARY KEY (post_id, tag_id))"
    )


def make_session(tmp_path, **policies) -> Session:
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'blog.db'}")
    session = Session(blog_schema(**policies), SQLiteAdapter(), connection_config=config)
    create_tables(session)
    return session


def scalar(session: Session, sql: str, params=()):
    return session.execute_sql(sql, params).fetchone()[0]


def seed_author(session: Session):
    author = session.make("author", name="Ada")
    author.posts = [session.make("post", title="first"), session.make("post", title="second")]
    assert session.save(author).ok
    return author


def test_has_many_children_receive_parent_key(tmp_path):
    session = make_session(tmp_path)
    author = session.make("author", name="Ada")
    first = session.make("post", title="first")
    second = session.make("post", title="second")
    author.posts = [first, second]

    result = session.save(author)
    assert result.ok
    assert [command.describe() for command in result.commands] == [
        "Insert(author)",
        "Insert(post)",
        "Insert(post)",
    ]
    assert first.author_id == author.id
    assert second.author_id == author.id
    assert scalar(session, "SELECT COUNT(*) FROM post WHERE author_id = ?", [author.id]) == 2
    session.close()


def test_cascade_delete_removes_children_first(tmp_path):
    session = make_session(tmp_path)
    author = seed_author(session)
    first, second = author.posts

    result = session.delete(author)
    assert result.ok
    assert [command.table for command in result.commands] == ["post_tag", "post", "post_tag", "post", "author"]
    assert scalar(session, "SELECT COUNT(*) FROM post") == 0
    assert scalar(session, "SELECT COUNT(*) FROM author") == 0
    assert author not in session.heap
    assert first not in session.heap and second not in session.heap
    session.close()


def test_nullify_clears_children_before_parent_delete(tmp_path):
    session = make_session(tmp_path, posts=Cascade.NULLIFY)
    author = seed_author(session)
    first, second = author.posts

    result = session.delete(author)
    assert result.ok
    assert [command.kind for command in result.commands] == ["Update", "Update", "Delete"]
    assert first.author_id is None and second.author_id is None
    assert session.heap.get(first).status is Status.MANAGED
    assert session.heap.get(first).state.data["author_id"] is None
    assert scalar(session, "SELECT COUNT(*) FROM post WHERE author_id IS NULL") == 2
    session.close()


def test_nullify_skips_children_that_were_never_saved(tmp_path):
    session = make_session(tmp_path, posts=Cascade.NULLIFY)
    author = session.make("author", name="Ada")
    assert session.save(author).ok
    draft = session.make("post", title="draft never saved")
    author.posts = [draft]

    result = session.delete(author)
    assert result.ok
    assert [command.describe() for command in result.commands] == ["Delete(author)"]
    assert session.heap.get(draft).status is Status.NEW
    assert scalar(session, "SELECT COUNT(*) FROM post") == 0
    assert scalar(session, "SELECT COUNT(*) FROM author") == 0
    session.close()


def test_delete_loads_unresolved_children(tmp_path):
    session = make_session(tmp_path)
    author_id = seed_author(session).id

    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'blog.db'}")
    fresh = Session(blog_schema(), SQLiteAdapter(), connection_config=config)
    loaded = fresh.find("author", author_id)
    assert isinstance(loaded.posts, Unresolved)

    result = fresh.delete(loaded)
    assert result.ok
    assert [command.kind for command in result.commands].count("Delete") == 5
    assert scalar(fresh, "SELECT COUNT(*) FROM post") == 0
    fresh.close()
    session.close()


def test_deleting_new_entity_emits_nothing(tmp_path):
    session = make_session(tmp_path)
    tag = session.make("tag", label="draft")
    result = session.delete(tag)
    assert result.ok
    assert result.commands == []
    assert tag not in session.heap
    session.close()


def test_belongs_to_without_cascade_requires_scheduled_parent(tmp_path):
    session = make_session(tmp_path, author=Cascade.NONE)
    author = session.make("author", name="Ada")
    post = session.make("post", title="orphan", author=author)

    result = session.save(post)
    assert result.status is RunStatus.ABORTED
    assert isinstance(result.error, UnscheduledDependency)
    assert result.error.relation == "author"

    assert session.unit_of_work().persist(author).persist(post).run().ok
    assert post.author_id == author.id
    session.close()


def test_managed_parent_is_linked_without_being_saved_again(tmp_path):
    session = make_session(tmp_path, author=Cascade.NONE)
    author = session.make("author", name="Ada")
    session.save(author)

    post = session.make("post", title="linked", author=author)
    result = session.save(post)
    assert result.ok
    assert [command.describe() for command in result.commands] == ["Insert(post)"]
    assert result.commands[0].values["author_id"] == author.id
    session.close()


def test_update_of_deleted_row_is_stale(tmp_path):
    session = make_session(tmp_path)
    tag = session.make("tag", label="old")
    session.save(tag)
    session.execute_sql("DELETE FROM tag WHERE id = ?", [tag.id])

    tag.label = "new"
    result = session.save(tag)
    assert result.status is RunStatus.ROLLED_BACK
    assert isinstance(result.error, StaleState)
    assert session.heap.get(tag).state.data["label"] == "old"
    session.close()


def test_changed_primary_key_is_rejected(tmp_path):
    session = make_session(tmp_path)
    tag = session.make("tag", label="old")
    session.save(tag)
    tag.id = tag.id + 100

    result = session.save(tag)
    assert result.status is RunStatus.ABORTED
    assert isinstance(result.error, StaleState)
    session.close()


def test_many_to_many_pivot_rows_follow_the_collection(tmp_path):
    session = make_session(tmp_path)
    python = session.make("tag", label="python")
    orm = session.make("tag", label="orm")
    post = session.make("post", title="tagged", tags=[python, orm])

    result = session.save(post)
    assert result.ok
    assert [command.table for command in result.commands] == ["post", "tag", "post_tag", "tag", "post_tag"]
    assert session.heap.get(post).state.relations["tags"] == frozenset({python.id, orm.id})

    post.tags = [orm]
    result = session.save(post)
    assert result.ok
    assert [(command.kind, command.table) for command in result.commands] == [("Delete", "post_tag")]
    assert session.heap.get(post).state.relations["tags"] == frozenset({orm.id})
    rows = session.execute_sql("SELECT tag_id FROM post_tag WHERE post_id = ?", [post.id]).fetchall()
    assert [row["tag_id"] for row in rows] == [orm.id]
    session.close()


def test_many_to_many_links_existing_entities(tmp_path):
    session = make_session(tmp_path)
    post = session.make("post", title="plain")
    tag = session.make("tag", label="later")
    session.unit_of_work().persist(post).persist(tag).run_or_raise()

    post.tags = [tag]
    result = session.save(post)
    assert result.ok
    assert [(command.kind, command.table) for command in result.commands] == [("Insert", "post_tag")]
    assert result.commands[0].values == {"post_id": post.id, "tag_id": tag.id}
    session.close()


def test_deleting_tagged_post_clears_pivot_first(tmp_path):
    session = make_session(tmp_path)
    post = session.make("post", title="tagged", tags=[session.make("tag", label="x")])
    session.save(post)

    result = session.delete(post)
    assert result.ok
    assert [command.table for command in result.commands] == ["post_tag", "post"]
    assert scalar(session, "SELECT COUNT(*) FROM post_tag") == 0
    assert scalar(session, "SELECT COUNT(*) FROM tag") == 1
    session.close()


def test_resolve_and_load_relations(tmp_path):
    session = make_session(tmp_path)
    tag = session.make("tag", label="python")
    author = session.make("author", name="Ada")
    post = session.make("post", title="loaded", author=author, tags=[tag])
    session.save(post)

    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'blog.db'}")
    fresh = Session(blog_schema(), SQLiteAdapter(), connection_config=config)
    loaded = fresh.find("post", post.id)
    assert isinstance(loaded.author, Unresolved)
    assert loaded.author.scope == {"id": author.id}
    assert isinstance(loaded.tags, Unresolved)
    assert loaded.tags.many

    parent = fresh.resolve(loaded.author)
    assert parent is fresh.find("author", author.id)
    assert parent.name == "Ada"

    tags = fresh.load(loaded, "tags")
    assert [item.label for item in tags] == ["python"]
    assert loaded.tags == tags
    assert fresh.heap.get(loaded).state.relations["tags"] == frozenset({tag.id})

    posts = fresh.load(parent, "posts")
    assert posts == [loaded]

    # Loading the collection does not schedule pivot changes.
    assert fresh.save(loaded).commands == []
    fresh.close()
    session.close()


def test_unresolved_relations_are_ignored_when_saving(tmp_path):
    session = make_session(tmp_path)
    author = seed_author(session)

    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'blog.db'}")
    fresh = Session(blog_schema(), SQLiteAdapter(), connection_config=config)
    loaded = fresh.find("author", author.id)
    loaded.name = "Grace"
    result = fresh.save(loaded)
    assert result.ok
    assert [command.describe() for command in result.commands] == ["Update(author)"]
    assert scalar(fresh, "SELECT COUNT(*) FROM post") == 2
    fresh.close()
    session.close()


@pytest.mark.parametrize("policy", [Cascade.CASCADE, Cascade.DELETE_ONLY])
def test_delete_policies_remove_dependents(tmp_path, policy):
    session = make_session(tmp_path, posts=policy)
    author = session.make("author", name="Ada")
    post = session.make("post", title="only", author=author)
    session.unit_of_work().persist(author).persist(post).run_or_raise()
    author.posts = [post]

    assert session.delete(author).ok
    assert scalar(session, "SELECT COUNT(*) FROM post") == 0
    session.close()
