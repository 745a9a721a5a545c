# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Resolve call sites that target capturing declarations."""

import ast
import logging
from dataclasses import dataclass, field
from typing import Literal

from exprcapture.forest import SyntaxForest, absolute_import_module, call_location
from exprcapture.model import (
    BoundArgument,
    CallSite,
    CandidateDeclaration,
    ParsedFile,
)

logger = logging.getLogger(__name__)

AmbiguityPolicy = Literal["first", "drop"]
ResolutionRoute = Literal["name", "module", "class", "receiver", "candidate"]


@dataclass(frozen=True)
class DeclarationRef:
    """Locate one textual function declaration of the forest."""

    module: str
    class_name: str | None
    name: str
    file_path: str


@dataclass(frozen=True)
class ResolvedCallee:
    """Represent the symbol a call expression targets.

    Attributes:
        name: Called function or method name.
        route: How the callee was resolved.
        targets: ``(module, class_name)`` owners to try, most specific first.
        candidates: Fallback declarations when the owner is unknown.
    """

    name: str
    route: ResolutionRoute
    targets: tuple[tuple[str, str | None], ...] = ()
    candidates: tuple[DeclarationRef, ...] = ()


@dataclass
class _ModuleSymbols:
    """Module-level bindings of one parsed file."""

    functions: set[str] = field(default_factory=set)
    classes: set[str] = field(default_factory=set)
    modules: dict[str, str] = field(default_factory=dict)
    imported: dict[str, tuple[str, str]] = field(default_factory=dict)


@dataclass
class _FunctionScope:
    """Local bindings of one enclosing function."""

    local_names: set[str]
    receiver_name: str | None
    owner_class: str | None


class _DeclarationIndex:
    """Index every textual function declaration in forest order."""

    def __init__(self, forest: SyntaxForest) -> None:
        self.refs: list[DeclarationRef] = []
        for parsed in forest.files:
            self._index_body(parsed, parsed.tree.body, class_stack=[])

    def _index_body(
        self, parsed: ParsedFile, body: list[ast.stmt], class_stack: list[str]
    ) -> None:
        for node in body:
            if isinstance(node, ast.ClassDef):
                self._index_body(parsed, node.body, class_stack + [node.name])
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self.refs.append(
                    DeclarationRef(
                        module=parsed.module,
                        class_name=".".join(class_stack) if class_stack else None,
                        name=node.name,
                        file_path=parsed.path,
                    )
                )
            elif isinstance(node, (ast.If, ast.Try)):
                nested = list(node.body) + list(node.orelse)
                if isinstance(node, ast.Try):
                    for handler in node.handlers:
                        nested.extend(handler.body)
                    nested.extend(node.finalbody)
                self._index_body(parsed, nested, class_stack)

    def exact(self, module: str, class_name: str | None, name: str) -> DeclarationRef | None:
        for ref in self.refs:
            if ref.module == module and ref.class_name == class_name and ref.name == name:
                return ref
        return None

    def by_name(self, name: str, methods: bool) -> list[DeclarationRef]:
        return [
            ref
            for ref in self.refs
            if ref.name == name and (ref.class_name is not None) == methods
        ]


class _CallCollector(ast.NodeVisitor):
    """Walk one file and resolve every call expression."""

    def __init__(self, resolver: "CallSiteResolver", parsed: ParsedFile) -> None:
        self._resolver = resolver
        self._parsed = parsed
        self._symbols = _module_symbols(parsed)
        self._class_stack: list[str] = []
        self._function_stack: list[_FunctionScope] = []
        self._expression_scopes: list[set[str]] = []
        self.call_sites: list[CallSite] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for child in node.decorator_list + node.bases:
            self.visit(child)
        self._class_stack.append(node.name)
        for statement in node.body:
            self.visit(statement)
        self._class_stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        owner_class = ".".join(self._class_stack) if self._class_stack else None
        receiver_name = None
        directly_in_class = owner_class is not None and (
            not self._function_stack
            or self._function_stack[-1].owner_class != owner_class
        )
        decorators = {_decorator_name(item) for item in node.decorator_list}
        if directly_in_class and "staticmethod" not in decorators:
            positional = list(node.args.posonlyargs) + list(node.args.args)
            if positional:
                receiver_name = positional[0].arg
        self._function_stack.append(
            _FunctionScope(
                local_names=_local_names(node),
                receiver_name=receiver_name,
                owner_class=owner_class,
            )
        )
        saved_classes = self._class_stack
        self._class_stack = list(saved_classes)
        for statement in node.body:
            self.visit(statement)
        self._class_stack = saved_classes
        self._function_stack.pop()

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for default in list(node.args.defaults) + [
            item for item in node.args.kw_defaults if item is not None
        ]:
            self.visit(default)
        self._expression_scopes.append(_argument_names(node.args))
        self.visit(node.body)
        self._expression_scopes.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node.generators, [node.key, node.value])

    def _visit_comprehension(
        self, generators: list[ast.comprehension], results: list[ast.expr]
    ) -> None:
        """Visit a comprehension with its targets bound locally.

        The first iterable is evaluated in the enclosing scope.

        Args:
            generators: ``for`` clauses of the comprehension.
            results: Element expressions evaluated per iteration.
        """
        self.visit(generators[0].iter)
        targets = {
            child.id
            for generator in generators
            for child in ast.walk(generator.target)
            if isinstance(child, ast.Name)
        }
        self._expression_scopes.append(targets)
        for index, generator in enumerate(generators):
            if index > 0:
                self.visit(generator.iter)
            for condition in generator.ifs:
                self.visit(condition)
        for result in results:
            self.visit(result)
        self._expression_scopes.pop()

    def visit_Call(self, node: ast.Call) -> None:
        call_site = self._resolve_call(node)
        if call_site is not None:
            self.call_sites.append(call_site)
        self.generic_visit(node)

    def _resolve_call(self, node: ast.Call) -> CallSite | None:
        callee = self._resolve_callee(node.func)
        if callee is None:
            return None
        ref = self._resolver.locate(callee)
        if ref is None:
            logger.debug(
                f"Dropping call without locatable declaration (file_path={self._parsed.path} line={node.lineno} name={callee.name})"
            )
            return None
        declaration = self._resolver.declaration_for(ref)
        if declaration is None:
            return None

        receiver_bound = declaration.binding == "class" or (
            declaration.binding == "instance" and callee.route != "class"
        )
        arguments = bind_arguments(declaration, node, receiver_bound)
        if arguments is None:
            logger.debug(
                f"Dropping call with unaligned arguments (file_path={self._parsed.path} line={node.lineno} name={callee.name})"
            )
            return None
        line, column = call_location(self._parsed, node)
        return CallSite(
            declaration=declaration,
            file=self._parsed,
            line=line,
            column=column,
            arguments=arguments,
            receiver_bound=receiver_bound,
            dispatch_through_receiver=not (
                isinstance(node.func, ast.Attribute) and isinstance(node.func.value, ast.Call)
            ),
        )

    def _resolve_callee(self, func: ast.expr) -> ResolvedCallee | None:
        """Resolve the symbol targeted by a call's function expression.

        Args:
            func: Function expression of the call.

        Returns:
            The resolved callee, or ``None`` when it cannot be a declaration.
        """
        if isinstance(func, ast.Name):
            if self._is_local(func.id):
                return None
            if func.id in self._symbols.functions:
                return ResolvedCallee(
                    name=func.id, route="name", targets=((self._parsed.module, None),)
                )
            if func.id in self._symbols.imported:
                module, name = self._symbols.imported[func.id]
                return ResolvedCallee(name=name, route="name", targets=((module, None),))
            return None

        if not isinstance(func, ast.Attribute):
            return None
        name = func.attr
        owner = func.value
        if isinstance(owner, ast.Name):
            scope = self._function_stack[-1] if self._function_stack else None
            if (
                scope is not None
                and owner.id == scope.receiver_name
                and not self._is_expression_local(owner.id)
            ):
                return ResolvedCallee(
                    name=name,
                    route="receiver",
                    targets=((self._parsed.module, scope.owner_class),),
                    candidates=self._resolver.method_candidates(name),
                )
            if not self._is_local(owner.id):
                if owner.id in self._symbols.modules:
                    module = self._symbols.modules[owner.id]
                    return ResolvedCallee(name=name, route="module", targets=((module, None),))
                if owner.id in self._symbols.classes:
                    return ResolvedCallee(
                        name=name, route="class", targets=((self._parsed.module, owner.id),)
                    )
                if owner.id in self._symbols.imported:
                    module, imported_name = self._symbols.imported[owner.id]
                    if imported_name[:1].isupper():
                        return ResolvedCallee(
                            name=name, route="class", targets=((module, imported_name),)
                        )
                    return ResolvedCallee(
                        name=name,
                        route="module",
                        targets=((f"{module}.{imported_name}", None),),
                    )
        return ResolvedCallee(
            name=name, route="candidate", candidates=self._resolver.method_candidates(name)
        )

    def _is_local(self, name: str) -> bool:
        if self._is_expression_local(name):
            return True
        return any(name in scope.local_names for scope in self._function_stack)

    def _is_expression_local(self, name: str) -> bool:
        return any(name in names for names in self._expression_scopes)


class CallSiteResolver:
    """Resolve calls of the forest against discovered declarations."""

    def __init__(
        self,
        forest: SyntaxForest,
        declarations: list[CandidateDeclaration],
        on_ambiguity: AmbiguityPolicy = "first",
    ) -> None:
        """Initialize the resolver.

        Args:
            forest: Parsed project.
            declarations: Output of the declaration discoverer.
            on_ambiguity: ``first`` takes the first candidate, ``drop`` drops
                calls with more than one candidate.
        """
        self._forest = forest
        self._index = _DeclarationIndex(forest)
        self._on_ambiguity = on_ambiguity
        self._declarations: dict[tuple[str, str | None, str], CandidateDeclaration] = {}
        for declaration in declarations:
            self._declarations.setdefault(declaration.key, declaration)

    def resolve(self) -> list[CallSite]:
        """Resolve every call expression of the forest.

        Returns:
            Call sites targeting capturing declarations, in file and source order.
        """
        call_sites: list[CallSite] = []
        if not self._declarations:
            return call_sites
        for parsed in self._forest.files:
            collector = _CallCollector(resolver=self, parsed=parsed)
            collector.visit(parsed.tree)
            call_sites.extend(collector.call_sites)
        logger.info(f"Call-site resolution completed (call_sites={len(call_sites)})")
        return call_sites

    def locate(self, callee: ResolvedCallee) -> DeclarationRef | None:
        """Locate the textual declaration of a resolved callee.

        Exact owners are tried first; otherwise the first declaration with
        the callee's name wins.

        Args:
            callee: Resolved callee.

        Returns:
            Located declaration, or ``None``.
        """
        for module, class_name in callee.targets:
            ref = self._index.exact(module, class_name, callee.name)
            if ref is not None:
                return ref
        candidates = list(callee.candidates)
        if not candidates and callee.targets:
            methods = any(class_name is not None for _, class_name in callee.targets)
            candidates = self._index.by_name(callee.name, methods=methods)
        if not candidates:
            return None
        if len(candidates) > 1 and self._on_ambiguity == "drop":
            logger.debug(
                f"Dropping ambiguous call (name={callee.name} candidates={len(candidates)})"
            )
            return None
        return candidates[0]

    def declaration_for(self, ref: DeclarationRef) -> CandidateDeclaration | None:
        return self._declarations.get((ref.module, ref.class_name, ref.name))

    def method_candidates(self, name: str) -> tuple[DeclarationRef, ...]:
        return tuple(self._index.by_name(name, methods=True))


def bind_arguments(
    declaration: CandidateDeclaration, call: ast.Call, receiver_bound: bool
) -> tuple[BoundArgument, ...] | None:
    """Align call arguments with declared parameters.

    Args:
        declaration: Target declaration.
        call: Call expression.
        receiver_bound: Whether the first parameter is bound implicitly.

    Returns:
        Explicitly supplied non-variadic arguments, or ``None`` when the call
        cannot be aligned or leaves a captured parameter unsupplied.
    """
    parameters = list(declaration.parameters)
    if receiver_bound:
        if not parameters or parameters[0].kind not in ("positional_only", "positional"):
            return None
        parameters = parameters[1:]

    if any(isinstance(argument, ast.Starred) for argument in call.args):
        return None
    if any(keyword.arg is None for keyword in call.keywords):
        return None

    bound: dict[str, ast.expr] = {}
    positional = [p for p in parameters if p.kind in ("positional_only", "positional")]
    has_var_positional = any(p.kind == "var_positional" for p in parameters)
    has_var_keyword = any(p.kind == "var_keyword" for p in parameters)

    for index, argument in enumerate(call.args):
        if index < len(positional):
            bound[positional[index].name] = argument
        elif not has_var_positional:
            return None

    keyword_targets = {
        p.name: p for p in parameters if p.kind in ("positional", "keyword_only")
    }
    for keyword in call.keywords:
        parameter = keyword_targets.get(keyword.arg or "")
        if parameter is None:
            if not has_var_keyword:
                return None
            continue
        if parameter.name in bound:
            return None
        bound[parameter.name] = keyword.value

    for parameter in parameters:
        if parameter.is_variadic or parameter.name in bound:
            continue
        if parameter.captured or parameter.default is None:
            return None

    return tuple(
        BoundArgument(parameter_name=parameter.name, expression=bound[parameter.name])
        for parameter in parameters
        if parameter.name in bound
    )


def _module_symbols(parsed: ParsedFile) -> _ModuleSymbols:
    """Collect module-level bindings used for callee resolution.

    Args:
        parsed: Parsed file.

    Returns:
        Module symbol table.
    """
    symbols = _ModuleSymbols()
    for node in parsed.tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            symbols.functions.add(node.name)
        elif isinstance(node, ast.ClassDef):
            symbols.classes.add(node.name)
    for node in ast.walk(parsed.tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname is not None:
                    symbols.modules[alias.asname] = alias.name
                else:
                    root = alias.name.split(".")[0]
                    symbols.modules.setdefault(root, root)
        elif isinstance(node, ast.ImportFrom):
            module = absolute_import_module(parsed, node)
            if module is None:
                continue
            for alias in node.names:
                if alias.name == "*":
                    continue
                symbols.imported[alias.asname or alias.name] = (module, alias.name)
    return symbols


def _local_names(node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda) -> set[str]:
    """Collect names bound inside a function, its parameters included.

    Args:
        node: Function node.

    Returns:
        Locally bound names.
    """
    names = _argument_names(node.args)
    body = node.body if isinstance(node.body, list) else [node.body]
    for statement in body:
        for child in ast.walk(statement):
            if isinstance(child, ast.Name) and isinstance(child.ctx, ast.Store):
                names.add(child.id)
            elif isinstance(child, (ast.Import, ast.ImportFrom)):
                for alias in child.names:
                    names.add((alias.asname or alias.name).split(".")[0])
            elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                names.add(child.name)
    return names


def _decorator_name(decorator: ast.expr) -> str | None:
    if isinstance(decorator, ast.Name):
        return decorator.id
    if isinstance(decorator, ast.Attribute):
        return decorator.attr
    return None


def _argument_names(args: ast.arguments) -> set[str]:
    names = {
        argument.arg
        for argument in list(args.posonlyargs) + list(args.args) + list(args.kwonlyargs)
    }
    if args.vararg is not None:
        names.add(args.vararg.arg)
    if args.kwarg is not None:
        names.add(args.kwarg.arg)
    return names
