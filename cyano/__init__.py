from cyano.cyano_bridge import HostBridge, HostError, HostNamespace, host_function
from cyano.cyano_config import RuntimeConfig, load_config
from cyano.cyano_datatypes import Context, DisplayOutput
from cyano.cyano_errors import CyanoError, CyanoRuntimeError, ParseError
from cyano.cyano_interpreter import NO_VALUE, Interpreter, interpret
from cyano.cyano_lexer import tokenize
from cyano.cyano_parser import parse, parse_source
from cyano.cyano_runtime import ExecutionHost, ExecutionResult

__all__ = [
    "Context",
    "CyanoError",
    "CyanoRuntimeError",
    "DisplayOutput",
    "ExecutionHost",
    "ExecutionResult",
    "HostBridge",
    "HostError",
    "HostNamespace",
    "Interpreter",
    "NO_VALUE",
    "ParseError",
    "RuntimeConfig",
    "host_function",
    "interpret",
    "load_config",
    "parse",
    "parse_source",
    "tokenize",
]
