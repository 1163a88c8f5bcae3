"""Solution workspace: loads .sln/.csproj/.vbproj files into a program model.

Projects, their source documents and their ``<ProjectReference>`` graph are
read from the MSBuild descriptors. C# documents are parsed with tree-sitter
and bound into one program-wide symbol table on first use.
"""
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx
from tree_sitter import Node

from ..analyzer.dialects import Dialect
from ..analyzer.symbols import (
    FileLineSpan,
    LinePosition,
    ReferencedSymbol,
    ReferenceLocation,
    Symbol,
    TextSpan,
)
from .binder import CSharpBinder, CSharpSemanticModel
from .csharp_syntax import CSharpSourceText, CSharpSyntaxTree
from .parser import LanguageParser, load_source
from .protocols import ProgramModelError
from .references import ReferenceFinder


PROJECT_LANGUAGES = {
    '.csproj': 'csharp',
    '.vbproj': 'vb',
}

SOURCE_EXTENSIONS = {
    'csharp': '.cs',
    'vb': '.vb',
}

# Build output, IDE state and VCS folders never hold project sources
EXCLUDED_DIRS = {
    'bin', 'obj',
    '.vs', '.vscode', '.idea',
    '.git', '.svn', '.hg',
    'node_modules', 'packages',
}

SOLUTION_PROJECT = re.compile(
    r'^Project\("\{(?P<type>[^}]*)\}"\)\s*=\s*"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"\s*,\s*"\{(?P<guid>[^}]*)\}"',
    re.MULTILINE,
)


def local_name(tag: str) -> str:
    """Strip the MSBuild XML namespace from a tag."""
    return tag.rsplit('}', 1)[-1]


def msbuild_path(value: str) -> str:
    return value.strip().replace('\\', '/')


def is_excluded(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(part.lower() in EXCLUDED_DIRS for part in parts[:-1])


def expand_items(directory: Path, pattern: str) -> List[Path]:
    """Expand one MSBuild item spec (``**\\*.cs``, ``Shared\\A.cs``) to files."""
    pattern = msbuild_path(pattern)
    if not pattern:
        return []
    if any(ch in pattern for ch in '*?'):
        path = Path(pattern)
        if path.is_absolute():
            # Path.glob only takes relative patterns
            directory = Path(path.anchor)
            pattern = str(path.relative_to(path.anchor))
        return sorted(p.resolve() for p in directory.glob(pattern) if p.is_file())
    return [(directory / pattern).resolve()]


def parse_solution(path: Path) -> List[Tuple[str, Path]]:
    """Read the project entries of a .sln file.

    Args:
        path: Solution file

    Returns:
        ``(name, absolute project path)`` pairs in solution order; solution
        folders and unknown project kinds are left out

    Raises:
        ProgramModelError: If the file cannot be read
    """
    try:
        text = path.read_text(encoding='utf-8-sig', errors='replace')
    except OSError as e:
        raise ProgramModelError(f"Cannot read solution {path}: {e}") from e

    entries = []
    for match in SOLUTION_PROJECT.finditer(text):
        relative = msbuild_path(match.group('path'))
        if Path(relative).suffix.lower() not in PROJECT_LANGUAGES:
            continue
        entries.append((match.group('name'), (path.parent / relative).resolve()))
    return entries


class ProjectFile:
    """Compile items and project references of one MSBuild project file."""

    def __init__(self, path: Path, sdk_style: bool, default_items: bool,
                 includes: List[str], removes: List[str], references: List[Path]):
        self.path = path
        self.sdk_style = sdk_style
        self.default_items = default_items
        self.includes = includes
        self.removes = removes
        self.references = references

    @classmethod
    def load(cls, path: Path) -> 'ProjectFile':
        """Parse a project file.

        Raises:
            ProgramModelError: If the file is missing or is not well-formed XML
        """
        try:
            root = ET.parse(path).getroot()
        except (OSError, ET.ParseError) as e:
            raise ProgramModelError(f"Cannot load project {path}: {e}") from e

        sdk_style = bool(root.get('Sdk')) or any(local_name(e.tag) == 'Sdk' for e in root)
        default_items = True
        includes: List[str] = []
        removes: List[str] = []
        references: List[Path] = []

        for element in root.iter():
            tag = local_name(element.tag)
            if tag == 'Compile':
                if element.get('Include'):
                    includes.extend(element.get('Include').split(';'))
                if element.get('Remove'):
                    removes.extend(element.get('Remove').split(';'))
            elif tag == 'ProjectReference' and element.get('Include'):
                references.append((path.parent / msbuild_path(element.get('Include'))).resolve())
            elif tag in ('EnableDefaultCompileItems', 'EnableDefaultItems'):
                if (element.text or '').strip().lower() == 'false':
                    default_items = False

        return cls(path, sdk_style, default_items, includes, removes, references)

    def source_files(self, language: str) -> List[Path]:
        """Compile items of the project, in discovery order.

        SDK-style projects glob every source file below the project folder;
        explicit ``Include`` items are added and ``Remove`` items dropped.
        """
        directory = self.path.parent
        extension = SOURCE_EXTENSIONS.get(language, '')
        files: List[Path] = []
        if self.sdk_style and self.default_items and extension:
            files.extend(sorted(p.resolve() for p in directory.glob(f'**/*{extension}')
                                if p.is_file() and not is_excluded(p, directory)))
        for pattern in self.includes:
            for item in expand_items(directory, pattern):
                if item not in files:
                    files.append(item)

        removed: Set[Path] = set()
        for pattern in self.removes:
            removed.update(expand_items(directory, pattern))
        return [f for f in files if f not in removed]


class SourceDocument:
    """A source file of one project."""

    def __init__(self, workspace: 'SolutionWorkspace', document_id: str, file_path: Path, language: str):
        self._workspace = workspace
        self._id = document_id
        self._file_path = str(file_path)
        self.language = language

    @property
    def id(self) -> str:
        return self._id

    @property
    def file_path(self) -> str:
        return self._file_path

    @property
    def tree(self) -> Optional[CSharpSyntaxTree]:
        return self._workspace.tree_for(self._file_path, self.language)

    async def syntax_root(self) -> Optional[CSharpSyntaxTree]:
        return self.tree

    async def semantic_model(self) -> Optional[CSharpSemanticModel]:
        tree = self.tree
        if tree is None:
            return None
        self._workspace.bind()
        return CSharpSemanticModel(self._workspace.binder, tree)

    async def source_text(self) -> Optional[CSharpSourceText]:
        tree = self.tree
        return tree.source_text() if tree is not None else None


class ProjectCompilation:
    def __init__(self, workspace: 'SolutionWorkspace', project: 'SolutionProject'):
        self._workspace = workspace
        self._project = project

    def syntax_trees(self) -> List[CSharpSyntaxTree]:
        trees = []
        for document in self._project.documents:
            tree = document.tree
            if tree is not None:
                trees.append(tree)
        return trees

    async def semantic_model(self, tree: CSharpSyntaxTree) -> CSharpSemanticModel:
        return CSharpSemanticModel(self._workspace.binder, tree)


class SolutionProject:
    """One loaded project with its documents."""

    def __init__(self, workspace: 'SolutionWorkspace', name: str, path: Path, language: str):
        self._workspace = workspace
        self._name = name
        self.path = path
        self._language = language
        self.documents: List[SourceDocument] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def language(self) -> str:
        return self._language

    async def compilation(self) -> Optional[ProjectCompilation]:
        """Compilation of the project, None when no grammar exists for its language."""
        if not LanguageParser.supports(self._language):
            return None
        self._workspace.bind()
        return ProjectCompilation(self._workspace, self)


class SolutionWorkspace:
    """Program model over the projects of one solution."""

    def __init__(self, path: Path, dialect: Dialect):
        """Initialize workspace.

        Args:
            path: .sln, .csproj or .vbproj file to open
            dialect: Dialect of the build being audited
        """
        self.path = Path(path).resolve()
        self.dialect = dialect
        # project path -> referenced project paths
        self.graph = nx.DiGraph()
        self.binder = CSharpBinder()
        self.finder = ReferenceFinder(self.binder)
        self._projects: List[SolutionProject] = []
        self._documents: Dict[str, SourceDocument] = {}
        self._trees: Dict[str, Optional[CSharpSyntaxTree]] = {}
        self._parsers: Dict[str, LanguageParser] = {}
        self._bound = False

    def load(self) -> 'SolutionWorkspace':
        """Load every project of the solution and the projects they reference.

        Raises:
            ProgramModelError: If the descriptor is unsupported or unreadable,
                or if no project could be loaded
        """
        suffix = self.path.suffix.lower()
        if suffix == '.sln':
            pending = parse_solution(self.path)
        elif suffix in PROJECT_LANGUAGES:
            pending = [(self.path.stem, self.path)]
        else:
            raise ProgramModelError(f"Unsupported solution file type: {self.path.name}")

        loaded: Set[Path] = set()
        while pending:
            name, project_path = pending.pop(0)
            if project_path in loaded:
                continue
            loaded.add(project_path)

            try:
                project_file = ProjectFile.load(project_path)
            except ProgramModelError:
                if project_path == self.path:
                    raise
                continue

            self._add_project(name, project_file)
            for reference in project_file.references:
                self.graph.add_edge(str(project_path), str(reference))
                pending.append((reference.stem, reference))

        if not self._projects:
            raise ProgramModelError(f"No projects could be loaded from {self.path}")
        return self

    def _add_project(self, name: str, project_file: ProjectFile):
        language = PROJECT_LANGUAGES[project_file.path.suffix.lower()]
        project = SolutionProject(self, name, project_file.path, language)
        index = len(self._projects)
        for position, file_path in enumerate(project_file.source_files(language)):
            document = SourceDocument(self, f'{index}:{position}', file_path, language)
            project.documents.append(document)
            self._documents[document.id] = document
        self._projects.append(project)
        self.graph.add_node(str(project_file.path), project=project)

    # ------------------------------------------------------------------
    # ProgramModel protocol
    # ------------------------------------------------------------------

    def projects(self, language: Optional[str] = None) -> List[SolutionProject]:
        return [p for p in self._projects if language is None or p.language == language]

    def get_document(self, document_id: str) -> Optional[SourceDocument]:
        return self._documents.get(document_id)

    async def find_references(self, symbol: Symbol) -> List[ReferencedSymbol]:
        """Usages of ``symbol`` in its declaring projects and their dependents.

        Locations come declaring project first, then dependents in solution
        order; documents in project order; positions in source order.
        """
        self.bind()
        documents: Dict[str, SourceDocument] = {}
        trees = []
        for project in self._search_scope(symbol):
            for document in project.documents:
                tree = document.tree
                if tree is None or tree.file_path in documents:
                    continue
                documents[tree.file_path] = document
                trees.append(tree)

        locations = [self._location(documents[tree.file_path], node)
                     for tree, node in self.finder.find(symbol, trees)]
        return [ReferencedSymbol(symbol, locations)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def tree_for(self, file_path: str, language: str) -> Optional[CSharpSyntaxTree]:
        """Parsed tree of a document (cached per path), None if unparsable."""
        if file_path in self._trees:
            return self._trees[file_path]

        tree = None
        if LanguageParser.supports(language):
            parser = self._parsers.get(language)
            if parser is None:
                parser = self._parsers[language] = LanguageParser(language)
            source = load_source(file_path)
            if source is not None:
                tree = CSharpSyntaxTree(file_path, source, parser.parse_source(source))
        self._trees[file_path] = tree
        return tree

    def bind(self):
        """Bind every parsable document of the program, once."""
        if self._bound:
            return
        self._bound = True
        for project in self._projects:
            for document in project.documents:
                tree = document.tree
                if tree is not None:
                    self.binder.add_tree(tree)

    def _search_scope(self, symbol: Symbol) -> List[SolutionProject]:
        files = self.binder.declaring_files.get(symbol.key, set())
        declaring = [p for p in self._projects
                     if any(d.file_path in files for d in p.documents)]

        dependents: Set[str] = set()
        for project in declaring:
            dependents.update(nx.ancestors(self.graph, str(project.path)))

        scope = list(declaring)
        scope.extend(p for p in self._projects
                     if str(p.path) in dependents and p not in declaring)
        return scope

    @staticmethod
    def _location(document: SourceDocument, node: Node) -> ReferenceLocation:
        start_row, start_column = node.start_point[0], node.start_point[1]
        end_row, end_column = node.end_point[0], node.end_point[1]
        return ReferenceLocation(
            document_id=document.id,
            source_span=TextSpan(node.start_byte, node.end_byte - node.start_byte),
            line_span=FileLineSpan(
                document.file_path,
                LinePosition(start_row, start_column),
                LinePosition(end_row, end_column),
            ),
        )


async def open_program_model(path: str | Path, dialect: Dialect) -> SolutionWorkspace:
    """Open a solution or project file as a program model.

    Args:
        path: .sln, .csproj or .vbproj file
        dialect: Dialect of the build being audited

    Returns:
        Loaded workspace

    Raises:
        ProgramModelError: If the descriptor cannot be loaded
    """
    return SolutionWorkspace(Path(path), dialect).load()
