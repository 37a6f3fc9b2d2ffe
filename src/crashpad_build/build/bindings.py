"""ctypes binding generation for the glue header.

The header is run through the target's preprocessor first, so platform
conditionals (_WIN32, __APPLE__, TARGET_OS_IOS) resolve exactly as they do
for the compiled glue object. Only declarations that come from the header
itself are kept; everything pulled in from system headers is dropped using
the preprocessor's line markers.

The generated module looks like:

    import ctypes

    TARGET = "x86_64-unknown-linux-gnu"
    POINTER_SIZE = 8

    crashpad_client_t = ctypes.c_void_p

    FUNCTIONS = {
        "crashpad_client_new": (crashpad_client_t, []),
        ...
    }

    def bind(lib): ...
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import CrashpadBuildError

logger = logging.getLogger(__name__)

# Matches GNU '# 12 "file" 1' and MSVC '#line 12 "file"' markers
LINE_MARKER = re.compile(r'^\s*#\s*(?:line\s+)?(\d+)\s+"((?:[^"\\]|\\.)*)"')

TYPEDEF = re.compile(r"^typedef\s+(.+?)\s*\b([A-Za-z_]\w*)$", re.S)
FUNCTION = re.compile(r"^(.+?)\b([A-Za-z_]\w*)\s*\((.*)\)$", re.S)
FUNCTION_POINTER = re.compile(r"\(\s*\*\s*([A-Za-z_]\w*)\s*\)")

QUALIFIERS = ("const", "volatile", "extern", "static", "inline", "restrict", "__restrict")

BASE_TYPES: Dict[str, str] = {
    "bool": "ctypes.c_bool",
    "_Bool": "ctypes.c_bool",
    "char": "ctypes.c_char",
    "signed char": "ctypes.c_byte",
    "unsigned char": "ctypes.c_ubyte",
    "short": "ctypes.c_short",
    "unsigned short": "ctypes.c_ushort",
    "int": "ctypes.c_int",
    "signed": "ctypes.c_int",
    "unsigned": "ctypes.c_uint",
    "unsigned int": "ctypes.c_uint",
    "long": "ctypes.c_long",
    "unsigned long": "ctypes.c_ulong",
    "long long": "ctypes.c_longlong",
    "unsigned long long": "ctypes.c_ulonglong",
    "float": "ctypes.c_float",
    "double": "ctypes.c_double",
    "size_t": "ctypes.c_size_t",
    "ssize_t": "ctypes.c_ssize_t",
    "wchar_t": "ctypes.c_wchar",
    "int8_t": "ctypes.c_int8",
    "int16_t": "ctypes.c_int16",
    "int32_t": "ctypes.c_int32",
    "int64_t": "ctypes.c_int64",
    "uint8_t": "ctypes.c_uint8",
    "uint16_t": "ctypes.c_uint16",
    "uint32_t": "ctypes.c_uint32",
    "uint64_t": "ctypes.c_uint64",
    "uintptr_t": "ctypes.c_size_t",
    "intptr_t": "ctypes.c_ssize_t",
}

# Pointee -> ctypes pointer type with native string/void semantics
POINTER_TYPES: Dict[str, str] = {
    "void": "ctypes.c_void_p",
    "char": "ctypes.c_char_p",
    "wchar_t": "ctypes.c_wchar_p",
}


class BindingError(CrashpadBuildError):
    """Raised when the header contains a declaration that cannot be bound."""

    pass


@dataclass(frozen=True)
class Parameter:
    name: Optional[str]
    ctype: str


@dataclass(frozen=True)
class FunctionDecl:
    """One C function prototype, with ctypes type expressions."""

    name: str
    restype: str
    params: Tuple[Parameter, ...]

    @property
    def argtypes(self) -> List[str]:
        return [p.ctype for p in self.params]


@dataclass
class HeaderDeclarations:
    typedefs: Dict[str, str] = field(default_factory=dict)
    functions: List[FunctionDecl] = field(default_factory=list)


def _marker_basename(path: str) -> str:
    return path.replace("\\\\", "/").replace("\\", "/").rsplit("/", 1)[-1]


def header_lines(preprocessed: str, header_name: str) -> List[str]:
    """Keep only the lines the preprocessor attributes to the header itself.

    Args:
        preprocessed: Preprocessor output with line markers
        header_name: File name of the header (e.g. 'wrapper.h')

    Returns:
        Lines that originate from the header
    """
    kept: List[str] = []
    current: Optional[str] = None
    for line in preprocessed.splitlines():
        marker = LINE_MARKER.match(line)
        if marker:
            current = _marker_basename(marker.group(2))
            continue
        if line.lstrip().startswith("#"):
            continue  # pragmas and other leftovers
        if current == header_name:
            kept.append(line)
    return kept


def _split_statements(lines: Sequence[str]) -> List[str]:
    text = " ".join(lines)
    # extern "C" { ... } blocks survive preprocessing when compiled as C++
    text = re.sub(r'extern\s+"C"\s*\{', " ", text)
    text = text.replace("}", " ")
    statements = []
    for raw in text.split(";"):
        statement = " ".join(raw.split())
        if statement:
            statements.append(statement)
    return statements


def _strip_qualifiers(text: str) -> str:
    words = [w for w in text.replace("*", " * ").split() if w not in QUALIFIERS]
    return " ".join(words)


class TypeMapper:
    """Maps C type spellings to ctypes expressions."""

    def __init__(self, typedefs: Optional[Dict[str, str]] = None):
        self.typedefs = typedefs if typedefs is not None else {}

    def map(self, spelling: str, context: str) -> str:
        """Map a C type to a ctypes expression.

        Args:
            spelling: C type, e.g. 'const char**'
            context: Declaration being bound, for error messages

        Returns:
            ctypes expression, or 'None' for void

        Raises:
            BindingError: If the type is unknown
        """
        cleaned = _strip_qualifiers(spelling)
        depth = cleaned.count("*")
        base = cleaned.replace("*", " ").split()
        base_name = " ".join(base)

        if not base_name:
            raise BindingError(f"Missing type in declaration of {context}")

        if depth == 0:
            if base_name == "void":
                return "None"
            return self._base(base_name, context)

        if base_name in POINTER_TYPES:
            expr = POINTER_TYPES[base_name]
        else:
            expr = f"ctypes.POINTER({self._base(base_name, context)})"
        for _ in range(depth - 1):
            expr = f"ctypes.POINTER({expr})"
        return expr

    def _base(self, name: str, context: str) -> str:
        if name in self.typedefs:
            return name
        if name in BASE_TYPES:
            return BASE_TYPES[name]
        raise BindingError(f"Unsupported C type '{name}' in declaration of {context}")


def _split_param(param: str) -> Tuple[str, Optional[str]]:
    """Split 'const char* name' into ('const char*', 'name')."""
    match = re.match(r"^(.*?)([A-Za-z_]\w*)$", param)
    if match:
        head, tail = match.group(1), match.group(2)
        head_words = head.replace("*", " * ").split()
        if head_words and any(w not in QUALIFIERS and w not in ("signed", "unsigned") for w in head_words):
            return head.strip(), tail
    return param, None


def parse_declarations(lines: Sequence[str]) -> HeaderDeclarations:
    """Parse typedefs and function prototypes from header lines.

    Raises:
        BindingError: If a declaration uses an unsupported type
    """
    result = HeaderDeclarations()
    mapper = TypeMapper(result.typedefs)

    for statement in _split_statements(lines):
        if statement.startswith("typedef "):
            pointer = FUNCTION_POINTER.search(statement)
            if pointer:
                raise BindingError(f"Function pointer typedef '{pointer.group(1)}' is not supported")
            typedef = TYPEDEF.match(statement)
            if typedef is None:
                raise BindingError(f"Cannot parse typedef: {statement}")
            underlying, name = typedef.group(1), typedef.group(2)
            result.typedefs[name] = mapper.map(underlying, name)
            continue

        function = FUNCTION.match(statement)
        if function is None:
            logger.debug(f"Ignoring declaration: {statement}")
            continue

        ret, name, params_text = function.group(1), function.group(2), function.group(3).strip()
        params: List[Parameter] = []
        if params_text and params_text != "void":
            for raw in params_text.split(","):
                spelling, param_name = _split_param(raw.strip())
                params.append(Parameter(name=param_name, ctype=mapper.map(spelling, name)))

        result.functions.append(
            FunctionDecl(name=name, restype=mapper.map(ret, name), params=tuple(params))
        )

    return result


def render_module(declarations: HeaderDeclarations, header_name: str, target: str, pointer_size: int) -> str:
    """Render the binding module source."""
    out = [
        f'"""ctypes bindings for {header_name} ({target}).',
        "",
        "Generated by crashpad-build. Do not edit.",
        '"""',
        "",
        "import ctypes",
        "",
        f'TARGET = "{target}"',
        f"POINTER_SIZE = {pointer_size}",
        "",
    ]
    for name, expr in declarations.typedefs.items():
        out.append(f"{name} = {expr}")
    if declarations.typedefs:
        out.append("")

    out.append("FUNCTIONS = {")
    for func in declarations.functions:
        argtypes = ", ".join(func.argtypes)
        out.append(f'    "{func.name}": ({func.restype}, [{argtypes}]),')
    out.append("}")
    out.extend(
        [
            "",
            "",
            "def bind(lib):",
            '    """Set restype/argtypes on the functions a loaded library exports."""',
            "    for name, (restype, argtypes) in FUNCTIONS.items():",
            "        func = getattr(lib, name, None)",
            "        if func is None:",
            "            continue",
            "        func.restype = restype",
            "        func.argtypes = argtypes",
            "    return lib",
            "",
        ]
    )
    return "\n".join(out)


class BindingGenerator:
    """Turns preprocessed header text into a ctypes module on disk."""

    def __init__(self, header: Path, target: str, pointer_size: int):
        self.header = Path(header)
        self.target = target
        self.pointer_size = pointer_size

    def generate(self, preprocessed: str, output: Path) -> Path:
        """Write the binding module.

        Args:
            preprocessed: Preprocessor output for the header
            output: Module path to write

        Returns:
            output

        Raises:
            BindingError: If nothing can be bound or a type is unsupported
        """
        lines = header_lines(preprocessed, self.header.name)
        declarations = parse_declarations(lines)
        if not declarations.functions:
            raise BindingError(f"No function declarations found in {self.header.name}")

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            render_module(declarations, self.header.name, self.target, self.pointer_size),
            encoding="utf-8",
        )
        logger.info(f"Generated {len(declarations.functions)} bindings in {output}")
        return output
