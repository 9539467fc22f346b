import pytest

from conch.errors import ConchRuntimeError, ConchTypeError
from conch.types.cell import Integer, String, Symbol
from conch.types.pair import list_of
from conch.types.reference import Constant, Variable
from conch.types.scope import Env, Object, Scope, as_context, resolve, to_context


def test_env_chain_lookup_and_shadowing():
    outer = Env()
    outer.add("x", Integer(1))
    inner = Env(outer)
    assert inner.access("x").get() is Integer(1)
    inner.add("x", Integer(2))
    assert inner.access("x").get() is Integer(2)
    assert outer.access("x").get() is Integer(1)
    assert inner.access("missing") is None


def test_env_prefixed_and_complete():
    env = Env()
    bin_dir = Symbol("/usr/bin")
    env.add("$PATH", bin_dir)
    env.add("path", Symbol("x"))
    assert env.prefixed("$") == {"$PATH": bin_dir}
    child = Env(env)
    child.add("$HOME", Symbol("/root"))
    assert sorted(child.complete("$")) == ["$HOME", "$PATH"]


def test_constants_cannot_be_set():
    env = Env()
    env.add_constant("k", Integer(1))
    with pytest.raises(ConchRuntimeError):
        env.access("k").set(Integer(2))
    assert isinstance(env.access("k"), Constant)


def test_env_copy_is_independent():
    env = Env()
    env.add("x", Integer(1))
    copy = env.copy()
    copy.access("x").set(Integer(2))
    assert env.access("x").get() is Integer(1)


def test_variable_copy():
    v = Variable(Integer(1))
    c = v.copy()
    c.set(Integer(2))
    assert v.get() is Integer(1)


def test_scope_private_and_public_members():
    s = Scope()
    s.define(Symbol("hidden"), Integer(1))
    s.public(Symbol("shown"), Integer(2))
    assert s.access("hidden").get() is Integer(1)
    assert s.access("shown").get() is Integer(2)

    obj = Object(s)
    assert obj.access("hidden") is None
    assert obj.access("shown").get() is Integer(2)


def test_scope_lookup_walks_enclosing_contexts():
    outer = Scope()
    outer.define(Symbol("x"), Integer(1))
    inner = Scope(outer)
    assert inner.access("x").get() is Integer(1)
    inner.define(Symbol("x"), Integer(2))
    assert inner.access("x").get() is Integer(2)


def test_object_rejects_private_members():
    obj = Object(Scope())
    with pytest.raises(ConchRuntimeError):
        obj.define(Symbol("x"), Integer(1))
    obj.public(Symbol("x"), Integer(1))
    assert obj.access("x").get() is Integer(1)


def test_object_expose_and_equality():
    s = Scope()
    a, b = Object(s), Object(s)
    assert a.expose() is s
    assert a.equal(b)
    assert not a.equal(Object(Scope()))


def test_scope_copy_keeps_parent():
    parent = Scope()
    s = Scope(parent)
    s.define(Symbol("x"), Integer(1))
    clone = s.copy()
    clone.access("x").set(Integer(5))
    assert s.access("x").get() is Integer(1)
    assert clone.prev is parent


def test_resolve_prefers_lexical_then_dynamic():
    s = Scope()
    env = Env()
    env.add("x", Integer(1))
    ref, owner = resolve(s, env, Symbol("x"))
    assert ref.get() is Integer(1)
    assert owner is None

    s.define(Symbol("x"), Integer(2))
    ref, owner = resolve(s, env, Symbol("x"))
    assert ref.get() is Integer(2)
    assert owner is s

    assert resolve(s, env, Symbol("nothing")) == (None, None)


def test_type_contexts_for_non_context_cells():
    import conch.builtin.contexts  # noqa: F401  registers the method scopes

    assert as_context(String("abc")) is not None
    assert as_context(list_of(Integer(1))) is not None
    assert as_context(Integer(1)) is None
    with pytest.raises(ConchTypeError):
        to_context(Integer(1))


def test_scope_exported_environment_names():
    s = Scope()
    s.public(Symbol("$EDITOR"), Symbol("vi"))
    s.public(Symbol("name"), Symbol("x"))
    assert s.exported() == {"$EDITOR": Symbol("vi")}
