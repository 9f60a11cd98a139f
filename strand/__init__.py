from .strand import (
  Context,
  Error,
  InvalidSyntaxError,
  Interpreter,
  Lexer,
  LexicalError,
  LoopLimitError,
  ScopeError,
  StackUnderflowError,
  String,
  SymbolError,
  SymbolTable,
  TT,
  Token,
  TokenCursor,
  run,
  run_web,
)
