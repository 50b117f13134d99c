"""Tests for identifier and reference resolution."""

import pytest

from xanosync.resolve.index import LazyIndex, PersistedIndex, build_search_data
from xanosync.resolve.references import DbRef, FunctionRunRef
from xanosync.resolve.resolver import (
    MATCH_BASENAME,
    MATCH_EXACT_PATH,
    MATCH_SANITIZED,
    ResolvedObject,
    Resolver,
    resolve_db_ref,
    resolve_function_ref,
    resolve_refs,
)
from xanosync.sync.store import TrackedObject

OBJECTS = [
    (3, "api_group", "apis/auth.xs"),
    (10, "api_endpoint", "apis/auth/login_POST.xs"),
    (11, "api_endpoint", "apis/users/users_id_GET.xs"),
    (20, "function", "functions/login.xs"),
    (21, "function", "functions/calc_total.xs"),
    (22, "function", "functions/user/send_email.xs"),
    (7, "table", "tables/user.xs"),
]


def make_objects():
    return [
        TrackedObject(id=object_id, type=object_type, path=path, sha256="", original="")
        for object_id, object_type, path in OBJECTS
    ]


@pytest.fixture(params=["persisted", "lazy"])
def index(request):
    """Provide both index implementations over the same objects."""
    if request.param == "persisted":
        return PersistedIndex(build_search_data(make_objects()))
    return LazyIndex(make_objects())


def paths(matches):
    return [match.path for match in matches]


class TestResolver:
    """Tests for Resolver.resolve."""

    def test_exact_path(self, index):
        """Test a full path with and without the extension."""
        resolver = Resolver(index)
        matches = resolver.resolve("apis/auth/login_POST.xs")
        assert paths(matches) == ["apis/auth/login_POST.xs"]
        assert matches[0].match_type == MATCH_EXACT_PATH
        assert paths(resolver.resolve("apis/auth/login_POST")) == [
            "apis/auth/login_POST.xs"
        ]

    def test_endpoint_file_name(self, index):
        """Test that an endpoint file name does not match the same-named function."""
        matches = Resolver(index).resolve("login_POST")
        assert paths(matches) == ["apis/auth/login_POST.xs"]
        assert matches[0].match_type == MATCH_BASENAME

    def test_basename(self, index):
        """Test a plain file name."""
        matches = Resolver(index).resolve("login")
        assert paths(matches) == ["functions/login.xs"]
        assert matches[0].type == "function"

    def test_sanitized_name(self, index):
        """Test that object names are matched through sanitization."""
        matches = Resolver(index).resolve("calcTotal")
        assert paths(matches) == ["functions/calc_total.xs"]
        assert matches[0].match_type == MATCH_SANITIZED

    def test_endpoint_pattern(self, index):
        """Test a URL pattern with a verb suffix."""
        matches = Resolver(index).resolve("users/{id}_GET")
        assert paths(matches) == ["apis/users/users_id_GET.xs"]

    def test_endpoint_verb_in_any_case(self, index):
        """Test endpoint names whose verb is not upper case."""
        resolver = Resolver(index)
        matches = resolver.resolve("Login_post")
        assert paths(matches) == ["apis/auth/login_POST.xs"]
        assert matches[0].match_type == MATCH_SANITIZED
        assert paths(resolver.resolve("auth/login_post")) == [
            "apis/auth/login_POST.xs"
        ]

    def test_path_suffix(self, index):
        """Test a partial path."""
        matches = Resolver(index).resolve("User/Send Email")
        assert paths(matches) == ["functions/user/send_email.xs"]

    def test_table_and_group(self, index):
        """Test that names shared by several types all match."""
        assert sorted(paths(Resolver(index).resolve("user"))) == ["tables/user.xs"]
        assert paths(Resolver(index).resolve("auth")) == ["apis/auth.xs"]

    def test_not_found(self, index):
        """Test an unknown identifier."""
        assert Resolver(index).resolve("does_not_exist") == []


class TestResolvedObject:
    """Tests for ResolvedObject."""

    def test_to_dict(self):
        """Test the JSON shape."""
        match = ResolvedObject(
            path="functions/login.xs", match_type="basename", name="login"
        )
        assert match.to_dict() == {
            "filePath": "functions/login.xs",
            "matchType": "basename",
            "name": "login",
            "type": None,
        }


class TestReferenceResolution:
    """Tests for db and function.run resolution."""

    def test_db_ref(self, index):
        """Test table lookup by plain and sanitized name."""
        assert resolve_db_ref(DbRef("get", "user", 1, 1), index) == "tables/user.xs"
        assert resolve_db_ref(DbRef("get", "User", 1, 1), index) == "tables/user.xs"
        assert resolve_db_ref(DbRef("get", "orders", 1, 1), index) is None

    def test_function_ref_full_name(self, index):
        """Test a folder-qualified function name."""
        ref = FunctionRunRef("User/Send Email", 1, 1)
        assert resolve_function_ref(ref, index) == "functions/user/send_email.xs"

    def test_function_ref_last_segment(self, index):
        """Test falling back to the last segment of the name."""
        ref = FunctionRunRef("Billing/calcTotal", 1, 1)
        assert resolve_function_ref(ref, index) == "functions/calc_total.xs"

    def test_function_ref_missing(self, index):
        """Test an unknown function."""
        assert resolve_function_ref(FunctionRunRef("nope", 1, 1), index) is None

    def test_resolve_refs(self, index):
        """Test resolving every reference in a source file."""
        source = (
            "function checkout {\n"
            "  stack {\n"
            "    db.get user {\n"
            "    }\n"
            '    function.run "calc_total"\n'
            "    db.add orders\n"
            "  }\n"
            "}\n"
        )
        refs = resolve_refs(source, index)
        assert [(ref.kind, ref.target, ref.path) for ref in refs] == [
            ("db", "user", "tables/user.xs"),
            ("db", "orders", None),
            ("function", "calc_total", "functions/calc_total.xs"),
        ]
        assert (refs[0].line, refs[0].column) == (3, 5)
