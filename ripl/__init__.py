from ripl.ripl_compiler import (
    Compiler, PassthroughCompiler, PythonCompiler, SourceCompiler, TypeStrippingCompiler, make_compiler,
)
from ripl.ripl_config import RiplConfig, load_config
from ripl.ripl_engine import Evaluator, TurnResult
from ripl.ripl_errors import (
    CompileError, ConfigError, RecoverableErrorClassifier, RiplError, SessionError, is_recoverable,
)
from ripl.ripl_io import (
    LineSink, LineSource, ListLineSink, ListLineSource, StdinLineSource, StreamLineSink, StreamLineSource,
)
from ripl.ripl_methods import CustomMethodRegistry
from ripl.ripl_sandbox import ExecutionSandbox
from ripl.ripl_session import Repl, SessionState
from ripl.ripl_transformer import StatementTransformer, transform

__version__ = "0.1.0"
