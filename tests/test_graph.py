"""Tests for symbol graph building: usage attribution and composition."""

from typeorg.models import ErrorKind

USER = "export interface User { id: string; name: string }\n"


def _decl(graph, file_path, name):
    return graph.declarations[(file_path, name)]


def test_importers_are_attributed_through_barrels(build_graph):
    """Test imports through an `export *` barrel count for the declaring file."""
    graph, errors = build_graph({
        "src/types/user.ts": USER,
        "src/types/index.ts": "export * from './user';\n",
        "src/screens/A.tsx": "import type { User } from '../types';\n",
        "src/screens/B.tsx": "import { User } from '../types/user';\n",
    })
    assert errors == []
    user = _decl(graph, "src/types/user.ts", "User")
    assert graph.importers_of(user) == {"src/screens/A.tsx", "src/screens/B.tsx"}


def test_renamed_reexport_is_followed(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/types/index.ts": "export { User as Person } from './user';\n",
        "src/screens/A.tsx": "import { Person } from '../types';\n",
    })
    user = _decl(graph, "src/types/user.ts", "User")
    assert graph.importers_of(user) == {"src/screens/A.tsx"}


def test_passthrough_barrel_is_not_an_importer(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/types/index.ts": "import { User } from './user';\nexport { User };\n",
        "src/screens/A.tsx": "import { User } from '../types';\n",
    })
    user = _decl(graph, "src/types/user.ts", "User")
    assert graph.importers_of(user) == {"src/screens/A.tsx"}


def test_namespace_member_use_counts_as_import(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/screens/A.tsx": "import * as T from '../types/user';\nlet u: T.User;\n",
    })
    user = _decl(graph, "src/types/user.ts", "User")
    assert graph.importers_of(user) == {"src/screens/A.tsx"}


def test_unknown_type_only_import_is_recovered(build_graph):
    graph, errors = build_graph({
        "src/types/user.ts": USER,
        "src/screens/A.tsx": "import type { Ghost } from '../types/user';\n",
        "src/screens/B.tsx": "import { formatUser } from '../types/user';\n",
    })
    assert [(e.kind, e.file_path, e.line) for e in errors] == [
        (ErrorKind.UNKNOWN_SYMBOL, "src/screens/A.tsx", 1),
    ]
    assert "Ghost" in errors[0].message


def test_reexport_cycle_terminates(build_graph):
    graph, errors = build_graph({
        "src/a/index.ts": "export * from '../b';\n",
        "src/b/index.ts": "export * from '../a';\n",
        "src/screens/A.tsx": "import type { Missing } from '../a';\n",
    })
    assert [e.kind for e in errors] == [ErrorKind.UNKNOWN_SYMBOL]
    assert graph.importers == {}


def test_extends_is_expanded_with_type_arguments(build_graph):
    """Test a generic base is expanded so the result matches a flat interface."""
    graph, _ = build_graph({
        "src/types/base.ts": "export interface Paginated<T> { items: T[]; total: number }\n",
        "src/types/page.ts": (
            "import type { Paginated } from './base';\n"
            "export interface UserPage extends Paginated<User> { cursor: string }\n"
            "export interface FlatPage { items: User[]; total: number; cursor: string }\n"
        ),
    })
    page = _decl(graph, "src/types/page.ts", "UserPage")
    flat = _decl(graph, "src/types/page.ts", "FlatPage")
    members = {m.name: m.type_text for m in page.shape_members}
    assert members == {"items": "User[]", "total": "number", "cursor": "string"}
    assert page.unexpanded == ()
    assert page.signature == flat.signature


def test_expansion_is_one_level_deep(build_graph):
    graph, _ = build_graph({
        "src/types/chain.ts": (
            "export interface A { a: string }\n"
            "export interface B extends A { b: string }\n"
            "export interface C extends B { c: string }\n"
            "export interface Flat { a: string; b: string; c: string }\n"
        ),
    })
    c = _decl(graph, "src/types/chain.ts", "C")
    assert sorted(m.name for m in c.shape_members) == ["b", "c"]
    assert c.unexpanded == ("A",)
    assert c.signature != _decl(graph, "src/types/chain.ts", "Flat").signature


def test_local_base_is_expanded(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": (
            "interface Timestamps { createdAt: string }\n"
            "export type User = Timestamps & { id: string };\n"
        ),
    })
    user = _decl(graph, "src/types/user.ts", "User")
    assert sorted(m.name for m in user.shape_members) == ["createdAt", "id"]
    assert ("src/types/user.ts", "Timestamps") not in graph.declarations


def test_unresolvable_base_stays_a_reference(build_graph):
    graph, _ = build_graph({
        "src/types/props.ts": (
            "import { ViewProps } from 'react-native';\n"
            "export interface CardProps extends ViewProps { title: string }\n"
            "export interface TitleProps { title: string }\n"
        ),
    })
    card = _decl(graph, "src/types/props.ts", "CardProps")
    title = _decl(graph, "src/types/props.ts", "TitleProps")
    assert card.signature != title.signature


def test_provided_names(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/types/post.ts": "export interface Post { id: string }\n",
        "src/types/index.ts": (
            "export { User } from './user';\n"
            "export * from './post';\n"
            "export interface Meta { v: number }\n"
        ),
    })
    assert graph.provided_names("src/types/index.ts") == {"User", "Meta"}
    assert len(graph.reexports_of("src/types/index.ts")) == 2


def test_default_exported_interface_is_located(build_graph):
    graph, errors = build_graph({
        "src/types/theme.ts": "export default interface Theme { primary: string }\n",
        "src/types/props.ts": "interface Props { title: string }\nexport default Props;\n",
        "src/a.tsx": (
            "import type Theme from './types/theme';\n"
            "import type Props from './types/props';\n"
        ),
    })
    assert errors == []
    theme = _decl(graph, "src/types/theme.ts", "Theme")
    props = _decl(graph, "src/types/props.ts", "Props")
    assert props.exported
    assert graph.importers_of(theme) == {"src/a.tsx"}
    assert graph.importers_of(props) == {"src/a.tsx"}


def test_same_name_alias_records_its_target(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/screens/A.tsx": (
            "import type { User as Model } from '../types/user';\n"
            "export type User = Model;\n"
            "export type Person = Model;\n"
        ),
    })
    user = _decl(graph, "src/screens/A.tsx", "User")
    person = _decl(graph, "src/screens/A.tsx", "Person")
    assert user.alias_of == ("src/types/user.ts", "User")
    assert person.alias_of is None
    assert _decl(graph, "src/types/user.ts", "User").alias_of is None


def test_barrel_using_a_forwarded_type_is_an_importer(build_graph):
    graph, _ = build_graph({
        "src/types/user.ts": USER,
        "src/types/index.ts": (
            "import { User } from './user';\n"
            "export { User };\n"
            "export interface Page { owner: User }\n"
        ),
        "src/screens/A.tsx": "import { User } from '../types';\n",
    })
    user = _decl(graph, "src/types/user.ts", "User")
    assert graph.importers_of(user) == {"src/screens/A.tsx", "src/types/index.ts"}
