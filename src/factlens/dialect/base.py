"""Abstract base dialect with capability flags and default SQL compilation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from factlens.ast.nodes import (
    AliasedExpr,
    BinaryOp,
    BindParam,
    ColumnRef,
    Expr,
    From,
    FunctionCall,
    InList,
    Join,
    Literal,
    RawSQL,
    Select,
    Star,
)
from factlens.models.errors import FactlensError
from factlens.settings import Settings


class UnsupportedAggregateError(FactlensError):
    """Raised when an aggregate function has no rendering for the dialect."""

    code = "UNSUPPORTED_AGGREGATE"
    status = 400

    def __init__(self, function: str, dialect: str) -> None:
        self.function = function
        super().__init__(f"Aggregate '{function}' is not supported by the {dialect} dialect")


@dataclass
class DialectCapabilities:
    """Flags indicating what SQL features a dialect supports."""

    supports_median: bool = False
    supports_ilike: bool = False
    supports_schemas: bool = True


@dataclass(frozen=True)
class PoolOptions:
    """Engine-level pool sizing for one connection."""

    pool_size: int
    connect_timeout_ms: int


class Dialect(ABC):
    """Abstract base for the supported relational engines.

    Provides default SQL compilation plus the catalog and session statements
    the pool registry and schema introspector need; dialects override
    specific methods.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def capabilities(self) -> DialectCapabilities: ...

    @property
    @abstractmethod
    def driver_name(self) -> str:
        """SQLAlchemy ``dialect+driver`` name used to build engine URLs."""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote an identifier per dialect rules."""

    @abstractmethod
    def pool_options(self, settings: Settings) -> PoolOptions:
        """Engine-specific default pool size and connect timeout."""

    @abstractmethod
    def connect_args(self, connect_timeout_ms: int) -> dict[str, object]:
        """DBAPI ``connect()`` keyword arguments for the driver."""

    @abstractmethod
    def default_schema_sql(self, schema: str) -> str:
        """Session command that makes ``schema`` the default for unqualified names."""

    @abstractmethod
    def columns_sql(self) -> str:
        """Catalog query for a table's column names in catalog order.

        Binds ``:table_name`` and ``:table_schema`` (``None`` means the
        session's current schema).
        """

    @abstractmethod
    def tables_sql(self) -> str:
        """Catalog query listing base tables; binds ``:table_schema``."""

    # -- aggregates ----------------------------------------------------------

    def _compile_median(self, args: list[Expr]) -> str:
        raise UnsupportedAggregateError("MEDIAN", self.name)

    def _compile_stddev(self, args: list[Expr]) -> str:
        return f"STDDEV_POP({self._first_arg(args)})"

    def _compile_variance(self, args: list[Expr]) -> str:
        return f"VAR_POP({self._first_arg(args)})"

    def _first_arg(self, args: list[Expr]) -> str:
        return self.compile_expr(args[0]) if args else "NULL"

    def compile_function(self, fname: str, args: list[Expr], distinct: bool) -> str:
        """Compile a function call, mapping semantic aggregate names to SQL."""
        match fname.upper():
            case "MEDIAN":
                return self._compile_median(args)
            case "STDDEV":
                return self._compile_stddev(args)
            case "VARIANCE":
                return self._compile_variance(args)
        args_sql = ", ".join(self.compile_expr(a) for a in args)
        if distinct:
            return f"{fname}(DISTINCT {args_sql})"
        return f"{fname}({args_sql})"

    # -- statements ----------------------------------------------------------

    def compile(self, ast: Select) -> str:
        """Render a complete SQL AST to a dialect-specific string."""
        return self.compile_select(ast)

    def compile_select(self, node: Select) -> str:
        """Compile a SELECT statement."""
        parts: list[str] = []

        # SELECT
        if node.columns:
            cols = ", ".join(self.compile_expr(c) for c in node.columns)
            parts.append(f"SELECT {cols}")
        else:
            parts.append("SELECT *")

        # FROM
        if node.from_:
            parts.append(f"FROM {self.compile_from(node.from_)}")

        # JOINs
        for join in node.joins:
            parts.append(self.compile_join(join))

        # WHERE
        if node.where:
            parts.append(f"WHERE {self.compile_expr(node.where)}")

        # GROUP BY
        if node.group_by:
            groups = ", ".join(self.compile_expr(g) for g in node.group_by)
            parts.append(f"GROUP BY {groups}")

        # LIMIT
        if node.limit is not None:
            parts.append(f"LIMIT {node.limit}")

        return "\n".join(parts)

    def compile_from(self, node: From) -> str:
        result = self.quote_identifier(node.source)
        if node.alias:
            result += f" AS {self.quote_identifier(node.alias)}"
        return result

    def compile_join(self, node: Join) -> str:
        source = self.quote_identifier(node.source)
        if node.alias:
            source += f" AS {self.quote_identifier(node.alias)}"

        parts = [f"{node.join_type.value} JOIN {source}"]
        if node.on:
            parts.append(f"ON {self.compile_expr(node.on)}")
        return " ".join(parts)

    def compile_expr(self, expr: Expr) -> str:
        """Compile an expression node to SQL string."""
        match expr:
            case Literal(value=None):
                return "NULL"
            case Literal(value=True):
                return "TRUE"
            case Literal(value=False):
                return "FALSE"
            case Literal(value=v):
                return str(v)
            case BindParam(name=name):
                return f":{name}"
            case Star(table=None):
                return "*"
            case Star(table=t) if t is not None:
                return f"{self.quote_identifier(t)}.*"
            case ColumnRef(name=name, table=None):
                return self.quote_identifier(name)
            case ColumnRef(name=name, table=table) if table is not None:
                return f"{self.quote_identifier(table)}.{self.quote_identifier(name)}"
            case AliasedExpr(expr=inner, alias=alias):
                return f"{self.compile_expr(inner)} AS {self.quote_identifier(alias)}"
            case FunctionCall(name=fname, args=args, distinct=distinct):
                return self.compile_function(fname, args, distinct)
            case BinaryOp(left=left, op=op, right=right):
                return f"({self.compile_expr(left)} {op} {self.compile_expr(right)})"
            case InList(expr=inner, values=values, negated=negated):
                vals = ", ".join(self.compile_expr(v) for v in values)
                op = "NOT IN" if negated else "IN"
                return f"({self.compile_expr(inner)} {op} ({vals}))"
            case RawSQL(sql=sql):
                return sql
            case _:
                raise ValueError(f"Unknown AST node type: {type(expr).__name__}")
