from .strings_with_arrows import *

import io
import operator
import string
from enum import Enum

#######################################
# CONSTANTS
#######################################

LETTERS = string.ascii_letters + '_'
LETTERS_DIGITS = LETTERS + string.digits
QUOTES = '\'"'

# Truthiness marker produced by '!' and by conditions that hold
TRUE_MARKER = '1'

#######################################
# ERRORS
#######################################

class Error:
  def __init__(self, pos_start, pos_end, error_name, details):
    self.pos_start = pos_start
    self.pos_end = pos_end
    self.error_name = error_name
    self.details = details

  @property
  def line(self):
    return self.pos_start.ln + 1 if self.pos_start else 0

  def as_diagnostic(self):
    return f'ERROR (line {self.line}): {self.details}'

  def as_string(self):
    result  = f'{self.error_name}: {self.details}\n'
    if self.pos_start:
      result += f'File {self.pos_start.fn}, line {self.line}'
      result += '\n\n' + string_with_arrows(self.pos_start.ftxt, self.pos_start, self.pos_end)
    return result

  def __repr__(self):
    return f'{type(self).__name__}({self.details!r}, line={self.line})'

class LexicalError(Error):
  def __init__(self, pos_start, pos_end, details):
    super().__init__(pos_start, pos_end, 'Lexical Error', details)

class InvalidSyntaxError(Error):
  def __init__(self, pos_start, pos_end, details=''):
    super().__init__(pos_start, pos_end, 'Syntax Error', details)

class SymbolError(Error):
  def __init__(self, pos_start, pos_end, details):
    super().__init__(pos_start, pos_end, 'Name Error', details)

class ScopeError(Error):
  def __init__(self, pos_start, pos_end, details):
    super().__init__(pos_start, pos_end, 'Scope Error', details)

class StackUnderflowError(Error):
  def __init__(self, pos_start, pos_end, details):
    super().__init__(pos_start, pos_end, 'Stack Underflow', details)

class LoopLimitError(Error):
  def __init__(self, pos_start, pos_end, details):
    super().__init__(pos_start, pos_end, 'Loop Limit Exceeded', details)

#######################################
# POSITION
#######################################

class Position:
  def __init__(self, idx, ln, col, fn, ftxt):
    self.idx = idx
    self.ln = ln
    self.col = col
    self.fn = fn
    self.ftxt = ftxt

  def advance(self, current_char=None):
    self.idx += 1
    self.col += 1

    if current_char == '\n':
      self.ln += 1
      self.col = 0

    return self

  def copy(self):
    return Position(self.idx, self.ln, self.col, self.fn, self.ftxt)

#######################################
# TOKENS
#######################################

class TT(Enum):
  PRINT          = 'PRINT'
  IF             = 'IF'
  ELSE           = 'ELSE'
  WHILE          = 'WHILE'
  VAR            = 'VAR'
  IDENTIFIER     = 'IDENTIFIER'
  STRING_LITERAL = 'STRING_LITERAL'
  ASSIGN         = 'ASSIGN'
  PLUS           = 'PLUS'
  MINUS          = 'MINUS'
  SLASH          = 'SLASH'
  PERCENT        = 'PERCENT'
  NOT            = 'NOT'
  EQ             = 'EQ'
  NEQ            = 'NEQ'
  LT             = 'LT'
  LE             = 'LE'
  GT             = 'GT'
  GE             = 'GE'
  QUESTION       = 'QUESTION'
  LPAREN         = 'LPAREN'
  RPAREN         = 'RPAREN'
  LBRACE         = 'LBRACE'
  RBRACE         = 'RBRACE'
  NEWLINE        = 'NEWLINE'
  EOF            = 'EOF'

KEYWORDS = {
  'PRINT': TT.PRINT,
  'IF':    TT.IF,
  'ELSE':  TT.ELSE,
  'WHILE': TT.WHILE,
  'VAR':   TT.VAR,
}

SINGLE_CHAR_TOKENS = {
  '+': TT.PLUS,
  '-': TT.MINUS,
  '/': TT.SLASH,
  '%': TT.PERCENT,
  '?': TT.QUESTION,
  '(': TT.LPAREN,
  ')': TT.RPAREN,
  '{': TT.LBRACE,
  '}': TT.RBRACE,
}

OPERAND_TYPES = (TT.IDENTIFIER, TT.STRING_LITERAL)
COMPARISON_TYPES = (TT.EQ, TT.NEQ, TT.LT, TT.LE, TT.GT, TT.GE, TT.QUESTION)

# A simple statement may be followed by one of these
STATEMENT_END_TYPES = (TT.NEWLINE, TT.RBRACE, TT.EOF)
# An expression never extends past one of these
LINE_END_TYPES = STATEMENT_END_TYPES + (TT.LBRACE,)

class Token:
  def __init__(self, type_, value=None, pos_start=None, pos_end=None):
    self.type = type_
    self.value = value

    if pos_start:
      self.pos_start = pos_start.copy()
      self.pos_end = pos_end.copy() if pos_end else pos_start.copy().advance()
    else:
      self.pos_start = None
      self.pos_end = None

  @property
  def line(self):
    return self.pos_start.ln + 1 if self.pos_start else 0

  def describe(self):
    if self.type == TT.EOF:
      return 'end of input'
    if self.type == TT.NEWLINE:
      return 'end of line'
    return f"'{self.value}'"

  def __repr__(self):
    if self.type in (TT.IDENTIFIER, TT.STRING_LITERAL):
      return f'{self.type.name}: {self.value}'
    return f'{self.type.name}'

#######################################
# LEXER
#######################################

class Lexer:
  def __init__(self, fn, text):
    self.fn = fn
    self.text = text
    self.pos = Position(-1, 0, -1, fn, text)
    self.current_char = None
    self.advance()

  def advance(self):
    self.pos.advance(self.current_char)
    self.current_char = self.text[self.pos.idx] if self.pos.idx < len(self.text) else None

  def make_tokens(self):
    tokens = []

    while self.current_char != None:
      if self.current_char in ' \t\r':
        self.advance()
      elif self.current_char == '\n':
        tokens.append(Token(TT.NEWLINE, '\n', pos_start=self.pos))
        self.advance()
      elif self.current_char == '#':
        self.skip_comment()
      elif self.current_char in LETTERS:
        tokens.append(self.make_identifier())
      elif self.current_char in QUOTES:
        token, error = self.make_string()
        if error: return [], error
        tokens.append(token)
      elif self.current_char in SINGLE_CHAR_TOKENS:
        tokens.append(Token(SINGLE_CHAR_TOKENS[self.current_char], self.current_char, pos_start=self.pos))
        self.advance()
      elif self.current_char == '!':
        tokens.append(self.make_operator(TT.NOT, TT.NEQ))
      elif self.current_char == '=':
        tokens.append(self.make_operator(TT.ASSIGN, TT.EQ))
      elif self.current_char == '<':
        tokens.append(self.make_operator(TT.LT, TT.LE))
      elif self.current_char == '>':
        tokens.append(self.make_operator(TT.GT, TT.GE))
      else:
        pos_start = self.pos.copy()
        char = self.current_char
        self.advance()
        return [], LexicalError(pos_start, self.pos, f"Unexpected character '{char}'")

    tokens.append(Token(TT.EOF, '', pos_start=self.pos))
    return tokens, None

  def make_identifier(self):
    id_str = ''
    pos_start = self.pos.copy()

    while self.current_char != None and self.current_char in LETTERS_DIGITS:
      id_str += self.current_char
      self.advance()

    tok_type = KEYWORDS.get(id_str, TT.IDENTIFIER)
    return Token(tok_type, id_str, pos_start, self.pos)

  def make_string(self):
    quote = self.current_char
    lexeme = quote
    pos_start = self.pos.copy()
    self.advance()

    # Literals are kept raw; no escape processing
    while self.current_char != None and self.current_char not in (quote, '\n'):
      lexeme += self.current_char
      self.advance()

    if self.current_char != quote:
      return None, LexicalError(pos_start, self.pos.copy(), 'Unterminated string literal')

    lexeme += quote
    self.advance()
    return Token(TT.STRING_LITERAL, lexeme, pos_start, self.pos), None

  def make_operator(self, single_type, double_type):
    """Lex `c` or `c=`, e.g. '<' versus '<='."""
    lexeme = self.current_char
    tok_type = single_type
    pos_start = self.pos.copy()
    self.advance()

    if self.current_char == '=':
      lexeme += '='
      tok_type = double_type
      self.advance()

    return Token(tok_type, lexeme, pos_start, self.pos)

  def skip_comment(self):
    while self.current_char != None and self.current_char != '\n':
      self.advance()

#######################################
# TOKEN CURSOR
#######################################

class TokenCursor:
  """
  Read-only view over tokens[start:end].
  Past `end` the cursor reports an EOF token placed at the boundary token,
  so errors raised at the end of a sub-range still point at the right line.
  """

  def __init__(self, tokens, start=0, end=None):
    self.tokens = tokens
    self.start = start
    self.end = len(tokens) if end is None else end
    self.idx = start

    anchor = tokens[min(self.end, len(tokens) - 1)] if tokens else None
    if anchor:
      self.eof_tok = Token(TT.EOF, '', anchor.pos_start, anchor.pos_end)
    else:
      self.eof_tok = Token(TT.EOF, '')

  @property
  def current_tok(self):
    return self.peek()

  def peek(self, offset=0):
    idx = self.idx + offset
    if idx < self.end:
      return self.tokens[idx]
    return self.eof_tok

  def advance(self):
    tok = self.current_tok
    if self.idx < self.end:
      self.idx += 1
    return tok

  def at_end(self):
    return self.current_tok.type == TT.EOF

  def skip_block(self):
    """
    Brace-depth skipping. Called just after an opening '{'; stops on the
    matching '}' without consuming it. Returns False if the tokens run out.
    """
    depth = 1
    while not self.at_end():
      tok_type = self.current_tok.type
      if tok_type == TT.LBRACE:
        depth += 1
      elif tok_type == TT.RBRACE:
        depth -= 1
        if depth == 0:
          return True
      self.advance()
    return False

  def skip_statement(self):
    """
    Skip one statement: up to the next NEWLINE outside braces, or a '}'
    that belongs to the enclosing block. Returns False on an unmatched '{'.
    """
    depth = 0
    while not self.at_end():
      tok_type = self.current_tok.type
      if tok_type == TT.NEWLINE and depth == 0:
        return True
      if tok_type == TT.LBRACE:
        depth += 1
      elif tok_type == TT.RBRACE:
        if depth == 0:
          return True
        depth -= 1
      self.advance()
    return depth == 0

#######################################
# SYMBOL TABLE
#######################################

class SymbolTable:
  def __init__(self):
    # scopes[0] is the global frame
    self.scopes = [{}]

  @property
  def depth(self):
    return len(self.scopes)

  def enter_scope(self):
    self.scopes.append({})

  def exit_scope(self, pos_start=None, pos_end=None):
    if len(self.scopes) <= 1:
      return ScopeError(pos_start, pos_end, 'Attempted to pop global scope')
    self.scopes.pop()
    return None

  def declare(self, name, value, pos_start=None, pos_end=None):
    current = self.scopes[-1]
    if name in current:
      return SymbolError(pos_start, pos_end, f"Variable '{name}' already declared in this scope")
    current[name] = value
    return None

  def lookup(self, name, pos_start=None, pos_end=None):
    scope = self.find_scope(name)
    if scope is None:
      return None, SymbolError(pos_start, pos_end, f"Unknown variable '{name}'")
    return scope[name], None

  def assign(self, name, value, pos_start=None, pos_end=None):
    scope = self.find_scope(name)
    if scope is None:
      return SymbolError(pos_start, pos_end, f"Assignment to undeclared variable '{name}'")
    scope[name] = value
    return None

  def find_scope(self, name):
    for scope in reversed(self.scopes):
      if name in scope:
        return scope
    return None

  def visible(self):
    symbols = {}
    for scope in self.scopes:
      symbols.update(scope)
    return symbols

#######################################
# VALUES
#######################################

COMPARISONS = {
  TT.EQ:       operator.eq,
  TT.NEQ:      operator.ne,
  TT.LT:       operator.lt,
  TT.LE:       operator.le,
  TT.GT:       operator.gt,
  TT.GE:       operator.ge,
  TT.QUESTION: operator.contains,
}

class String:
  def __init__(self, value=''):
    self.value = value

  @classmethod
  def from_bool(cls, flag):
    return cls(TRUE_MARKER if flag else '')

  def __eq__(self, other):
    return isinstance(other, String) and self.value == other.value

  def __hash__(self):
    return hash(self.value)

  def added_to(self, other):
    return String(self.value + other.value)

  def subbed_by(self, other):
    idx = self.value.find(other.value)
    if idx < 0:
      return String(self.value)
    return String(self.value[:idx] + self.value[idx + len(other.value):])

  def dived_by(self, other):
    idx = self.value.find(other.value)
    if idx < 0:
      return String(self.value)
    return String(self.value[:idx])

  def modded_by(self, other):
    idx = self.value.find(other.value)
    if idx < 0:
      return String('')
    return String(self.value[idx + len(other.value):])

  def compared_to(self, op_type, other):
    return COMPARISONS[op_type](self.value, other.value)

  def notted(self):
    return String.from_bool(not self.is_true())

  def is_true(self):
    return len(self.value) > 0

  def display(self):
    return self.value if self.value else '""'

  def __str__(self):
    return self.value

  def __repr__(self):
    return f'"{self.value}"'

STRING_OPERATORS = {
  TT.PLUS:    String.added_to,
  TT.MINUS:   String.subbed_by,
  TT.SLASH:   String.dived_by,
  TT.PERCENT: String.modded_by,
}

#######################################
# NODES
#######################################

class ExprNode:
  """Arithmetic expression kept as the token range tokens[start:end]."""

  def __init__(self, tokens, start, end):
    self.tokens = tokens
    self.start = start
    self.end = end

    self.pos_start = tokens[start].pos_start
    self.pos_end = tokens[end - 1].pos_end

  def __repr__(self):
    return f'Expr{self.tokens[self.start:self.end]}'

class ConditionNode:
  """Boolean condition kept as the token range between its parentheses."""

  def __init__(self, tokens, start, end):
    self.tokens = tokens
    self.start = start
    self.end = end

    self.pos_start = tokens[start].pos_start
    self.pos_end = tokens[end - 1].pos_end

  def __repr__(self):
    return f'Cond{self.tokens[self.start:self.end]}'

class NotNode:
  def __init__(self, op_tok, node):
    self.op_tok = op_tok
    self.node = node

    self.pos_start = self.op_tok.pos_start
    self.pos_end = node.pos_end

class PrintNode:
  def __init__(self, print_tok, value_node=None):
    self.print_tok = print_tok
    self.value_node = value_node

    self.pos_start = self.print_tok.pos_start
    self.pos_end = (value_node or print_tok).pos_end

class VarDeclNode:
  def __init__(self, var_name_tok, value_node):
    self.var_name_tok = var_name_tok
    self.value_node = value_node

    self.pos_start = self.var_name_tok.pos_start
    self.pos_end = self.value_node.pos_end

class VarAssignNode:
  def __init__(self, var_name_tok, value_node):
    self.var_name_tok = var_name_tok
    self.value_node = value_node

    self.pos_start = self.var_name_tok.pos_start
    self.pos_end = self.value_node.pos_end

class IfNode:
  def __init__(self, if_tok, condition_node, body_node):
    self.condition_node = condition_node
    self.body_node = body_node

    self.pos_start = if_tok.pos_start
    self.pos_end = condition_node.pos_end

class ElseNode:
  def __init__(self, else_tok, body_node):
    self.body_node = body_node

    self.pos_start = else_tok.pos_start
    self.pos_end = else_tok.pos_end

class WhileNode:
  def __init__(self, while_tok, condition_node, body_node):
    self.condition_node = condition_node
    self.body_node = body_node

    self.pos_start = while_tok.pos_start
    self.pos_end = condition_node.pos_end

class ScopeEnterNode:
  def __init__(self, tok):
    self.pos_start = tok.pos_start
    self.pos_end = tok.pos_end

class ScopeExitNode:
  def __init__(self, tok):
    self.pos_start = tok.pos_start
    self.pos_end = tok.pos_end

class BlockNode:
  """
  A statement sequence over tokens[start:end]: the whole program, a braced
  body, or the single statement following IF/ELSE.

  Statements are parsed lazily, one at a time, the first time execution
  reaches them, and cached so that loop bodies are replayed without being
  parsed again. A body that is never executed is never parsed.
  """

  def __init__(self, tokens, start, end, new_scope, pos_start=None):
    self.tokens = tokens
    self.start = start
    self.end = end
    self.new_scope = new_scope

    if pos_start is None and start < len(tokens):
      pos_start = tokens[start].pos_start
    self.pos_start = pos_start
    self.pos_end = tokens[min(end, len(tokens) - 1)].pos_end if tokens else None

    self.statements = []
    self.parser = None
    self.complete = False

  def statement_at(self, index):
    if index < len(self.statements):
      return ParseResult().success(self.statements[index])
    if self.complete:
      return ParseResult().success(None)

    if self.parser is None:
      self.parser = Parser(TokenCursor(self.tokens, self.start, self.end))

    res = self.parser.next_statement()
    if res.error:
      return res

    if res.node is None:
      self.complete = True
    else:
      self.statements.append(res.node)
    return res

#######################################
# PARSE RESULT
#######################################

class ParseResult:
  def __init__(self):
    self.error = None
    self.node = None

  def register(self, res):
    if res.error: self.error = res.error
    return res.node

  def success(self, node):
    self.node = node
    return self

  def failure(self, error):
    if not self.error:
      self.error = error
    return self

#######################################
# PARSER
#######################################

class Parser:
  def __init__(self, cursor):
    self.cursor = cursor

    self.statement_parsers = {
      TT.PRINT:      self.print_statement,
      TT.VAR:        self.var_statement,
      TT.IDENTIFIER: self.assign_statement,
      TT.IF:         self.if_statement,
      TT.ELSE:       self.else_statement,
      TT.WHILE:      self.while_statement,
      TT.LBRACE:     self.scope_enter_statement,
      TT.RBRACE:     self.scope_exit_statement,
    }

  @property
  def current_tok(self):
    return self.cursor.current_tok

  def advance(self):
    return self.cursor.advance()

  def error(self, details, tok=None):
    tok = tok or self.current_tok
    return InvalidSyntaxError(tok.pos_start, tok.pos_end, details)

  def next_statement(self):
    res = ParseResult()

    while self.current_tok.type == TT.NEWLINE:
      self.advance()

    if self.current_tok.type == TT.EOF:
      return res.success(None)

    parse_statement = self.statement_parsers.get(self.current_tok.type)
    if parse_statement is None:
      return res.failure(self.error(
        f"Unexpected token {self.current_tok.describe()} at start of statement"
      ))

    return parse_statement()

  ###################################

  def print_statement(self):
    res = ParseResult()
    print_tok = self.advance()

    if self.current_tok.type in STATEMENT_END_TYPES:
      return res.success(PrintNode(print_tok))

    value_node = res.register(self.value_expr(allow_condition=True))
    if res.error: return res

    res.register(self.end_of_statement())
    if res.error: return res

    return res.success(PrintNode(print_tok, value_node))

  def var_statement(self):
    res = ParseResult()
    self.advance()

    if self.current_tok.type != TT.IDENTIFIER:
      return res.failure(self.error("Expected identifier after 'VAR'"))

    var_name_tok = self.advance()

    if self.current_tok.type != TT.ASSIGN:
      return res.failure(self.error("Expected '='"))

    self.advance()
    value_node = res.register(self.assignment_value())
    if res.error: return res

    res.register(self.end_of_statement())
    if res.error: return res

    return res.success(VarDeclNode(var_name_tok, value_node))

  def assign_statement(self):
    res = ParseResult()

    node = res.register(self.assignment())
    if res.error: return res

    res.register(self.end_of_statement())
    if res.error: return res

    return res.success(node)

  def if_statement(self):
    res = ParseResult()
    if_tok = self.advance()

    condition_node = res.register(self.condition_clause(if_tok))
    if res.error: return res

    body_node = res.register(self.body(if_tok))
    if res.error: return res

    res.register(self.end_of_compound_statement())
    if res.error: return res

    return res.success(IfNode(if_tok, condition_node, body_node))

  def else_statement(self):
    res = ParseResult()
    else_tok = self.advance()

    body_node = res.register(self.body(else_tok))
    if res.error: return res

    res.register(self.end_of_compound_statement())
    if res.error: return res

    return res.success(ElseNode(else_tok, body_node))

  def while_statement(self):
    res = ParseResult()
    while_tok = self.advance()

    condition_node = res.register(self.condition_clause(while_tok))
    if res.error: return res

    if self.current_tok.type != TT.LBRACE:
      return res.failure(self.error("Expected '{' after WHILE condition"))

    body_node = res.register(self.braced_body())
    if res.error: return res

    res.register(self.end_of_compound_statement())
    if res.error: return res

    return res.success(WhileNode(while_tok, condition_node, body_node))

  def scope_enter_statement(self):
    res = ParseResult()
    lbrace_tok = self.advance()

    # The frame opened here must be closed by a matching brace
    start = self.cursor.idx
    matched = self.cursor.skip_block()
    self.cursor.idx = start
    if not matched:
      return res.failure(self.error("Unmatched '{'", lbrace_tok))

    return res.success(ScopeEnterNode(lbrace_tok))

  def scope_exit_statement(self):
    return ParseResult().success(ScopeExitNode(self.advance()))

  ###################################

  def end_of_statement(self):
    res = ParseResult()
    if self.current_tok.type not in STATEMENT_END_TYPES:
      return res.failure(self.error(
        f"Unexpected token {self.current_tok.describe()} after statement"
      ))
    return res.success(None)

  def end_of_compound_statement(self):
    # `} ELSE {` may share a line
    if self.current_tok.type == TT.ELSE:
      return ParseResult().success(None)
    return self.end_of_statement()

  def assignment(self):
    res = ParseResult()
    var_name_tok = self.advance()

    if self.current_tok.type != TT.ASSIGN:
      return res.failure(self.error("Expected '='"))

    self.advance()
    value_node = res.register(self.assignment_value())
    if res.error: return res

    return res.success(VarAssignNode(var_name_tok, value_node))

  def assignment_value(self):
    # `a = b = value` assigns b first, then hands the same value on
    if self.current_tok.type == TT.IDENTIFIER and self.cursor.peek(1).type == TT.ASSIGN:
      return self.assignment()
    return self.value_expr()

  def value_expr(self, allow_condition=False):
    res = ParseResult()

    if self.current_tok.type == TT.NOT:
      not_tok = self.advance()
      node = res.register(self.value_expr(allow_condition))
      if res.error: return res
      return res.success(NotNode(not_tok, node))

    if allow_condition and self.looks_like_condition():
      return self.parenthesized_condition()

    return self.expression()

  def looks_like_condition(self):
    if self.current_tok.type != TT.LPAREN:
      return False

    following = self.cursor.peek(1).type
    if following == TT.NOT:
      return True
    return following in OPERAND_TYPES and self.cursor.peek(2).type in COMPARISON_TYPES

  def expression(self):
    res = ParseResult()
    start = self.cursor.idx

    while self.current_tok.type not in LINE_END_TYPES:
      self.advance()

    if self.cursor.idx == start:
      return res.failure(self.error(
        f"Expected expression, found {self.current_tok.describe()}"
      ))

    return res.success(ExprNode(self.cursor.tokens, start, self.cursor.idx))

  def condition_clause(self, keyword_tok):
    if self.current_tok.type != TT.LPAREN:
      return ParseResult().failure(self.error(f"Expected '(' after '{keyword_tok.value}'"))
    return self.parenthesized_condition()

  def parenthesized_condition(self):
    res = ParseResult()
    self.advance()
    start = self.cursor.idx

    while self.current_tok.type != TT.RPAREN:
      if self.current_tok.type in LINE_END_TYPES:
        return res.failure(self.error(f"Expected ')', found {self.current_tok.describe()}"))
      self.advance()

    if self.cursor.idx == start:
      return res.failure(self.error('Expected condition'))

    node = ConditionNode(self.cursor.tokens, start, self.cursor.idx)
    self.advance()
    return res.success(node)

  def body(self, keyword_tok):
    if self.current_tok.type == TT.LBRACE:
      return self.braced_body()
    return self.single_statement_body(keyword_tok)

  def braced_body(self):
    res = ParseResult()
    lbrace_tok = self.advance()
    start = self.cursor.idx

    if not self.cursor.skip_block():
      return res.failure(self.error("Unmatched '{'", lbrace_tok))

    end = self.cursor.idx
    self.advance()
    return res.success(BlockNode(
      self.cursor.tokens, start, end,
      new_scope=True,
      pos_start=lbrace_tok.pos_start
    ))

  def single_statement_body(self, keyword_tok):
    res = ParseResult()
    start = self.cursor.idx

    if not self.cursor.skip_statement():
      return res.failure(self.error("Unmatched '{'"))

    if self.cursor.idx == start:
      return res.failure(self.error(
        f"Expected statement after '{keyword_tok.value}', found {self.current_tok.describe()}"
      ))

    return res.success(BlockNode(self.cursor.tokens, start, self.cursor.idx, new_scope=False))

#######################################
# RUNTIME RESULT
#######################################

class RTResult:
  def __init__(self):
    self.reset()

  def reset(self):
    self.value = None
    self.error = None

  def register(self, res):
    self.error = res.error
    return res.value

  def success(self, value):
    self.reset()
    self.value = value
    return self

  def failure(self, error):
    self.reset()
    self.error = error
    return self

#######################################
# EXPRESSION EVALUATION
#######################################

def resolve_operand(tok, context):
  res = RTResult()

  if tok.type == TT.IDENTIFIER:
    value, error = context.symbol_table.lookup(tok.value, tok.pos_start, tok.pos_end)
    if error: return res.failure(error)
    return res.success(value)

  if tok.type == TT.STRING_LITERAL:
    return res.success(String(tok.value[1:-1]))

  return res.failure(InvalidSyntaxError(
    tok.pos_start, tok.pos_end,
    f"Expected identifier or string literal, found {tok.describe()}"
  ))

class ExpressionEvaluator:
  """
  Precedence climbing directly over a token range:

    expr    : term (('+' | '-') term)*
    term    : primary (('/' | '%') primary)*
    primary : IDENTIFIER | STRING_LITERAL | '(' expr ')'
  """

  def __init__(self, tokens, start, end, context):
    self.cursor = TokenCursor(tokens, start, end)
    self.context = context

  @property
  def current_tok(self):
    return self.cursor.current_tok

  def evaluate(self):
    res = RTResult()
    value = res.register(self.expr())
    if res.error: return res

    if not self.cursor.at_end():
      return res.failure(InvalidSyntaxError(
        self.current_tok.pos_start, self.current_tok.pos_end,
        f"Expected '+', '-', '/' or '%', found {self.current_tok.describe()}"
      ))

    return res.success(value)

  def expr(self):
    return self.bin_op(self.term, (TT.PLUS, TT.MINUS))

  def term(self):
    return self.bin_op(self.primary, (TT.SLASH, TT.PERCENT))

  def primary(self):
    res = RTResult()
    tok = self.current_tok

    if tok.type == TT.LPAREN:
      self.cursor.advance()
      value = res.register(self.expr())
      if res.error: return res

      if self.current_tok.type != TT.RPAREN:
        return res.failure(InvalidSyntaxError(
          self.current_tok.pos_start, self.current_tok.pos_end,
          f"Expected ')', found {self.current_tok.describe()}"
        ))

      self.cursor.advance()
      return res.success(value)

    value = res.register(resolve_operand(tok, self.context))
    if res.error: return res

    self.cursor.advance()
    return res.success(value)

  def bin_op(self, func, ops):
    res = RTResult()
    left = res.register(func())
    if res.error: return res

    while self.current_tok.type in ops:
      op_tok = self.cursor.advance()
      right = res.register(func())
      if res.error: return res
      left = STRING_OPERATORS[op_tok.type](left, right)

    return res.success(left)

class ConditionEvaluator:
  """cond : '!'? operand (comparison operand)?"""

  def __init__(self, tokens, start, end, context):
    self.cursor = TokenCursor(tokens, start, end)
    self.context = context

  @property
  def current_tok(self):
    return self.cursor.current_tok

  def evaluate(self):
    res = RTResult()
    negate = False

    if self.current_tok.type == TT.NOT:
      negate = True
      self.cursor.advance()

    left = res.register(resolve_operand(self.current_tok, self.context))
    if res.error: return res
    self.cursor.advance()

    if self.cursor.at_end():
      result = left.is_true()
    else:
      op_tok = self.current_tok
      if op_tok.type not in COMPARISON_TYPES:
        return res.failure(InvalidSyntaxError(
          op_tok.pos_start, op_tok.pos_end,
          f"Expected comparison operator, found {op_tok.describe()}"
        ))
      self.cursor.advance()

      right = res.register(resolve_operand(self.current_tok, self.context))
      if res.error: return res
      self.cursor.advance()

      if not self.cursor.at_end():
        return res.failure(InvalidSyntaxError(
          self.current_tok.pos_start, self.current_tok.pos_end,
          f"Unexpected token {self.current_tok.describe()} in condition"
        ))

      result = left.compared_to(op_tok.type, right)

    return res.success(not result if negate else result)

#######################################
# CONTEXT
#######################################

class Context:
  def __init__(self, display_name='<program>', trace=None, max_loop_iterations=None, output=None):
    self.display_name = display_name
    # Stream PRINT writes to; None means the current sys.stdout
    self.output = output
    self.symbol_table = SymbolTable()
    self.value_stack = []
    # Outcome of the IF/ELSE just executed in the current statement sequence
    self.pending_if = None
    self.trace = trace
    self.max_loop_iterations = max_loop_iterations

#######################################
# EXECUTION TRACE
#######################################

def snapshot(node, context):
  if context.trace is None:
    return

  context.trace.append({
    "node": type(node).__name__,
    "line": node.pos_start.ln + 1 if node.pos_start else None,
    "scope": context.symbol_table.depth,
    "symbols": {k: v.value for k, v in context.symbol_table.visible().items()},
  })

#######################################
# INTERPRETER
#######################################

class Interpreter:
  def visit(self, node, context):
    method_name = f'visit_{type(node).__name__}'
    method = getattr(self, method_name, self.no_visit_method)

    node_name = type(node).__name__

    if node_name in ("IfNode", "ElseNode", "WhileNode"):
      snapshot(node, context)

    result = method(node, context)

    if node_name in ("PrintNode", "VarDeclNode", "VarAssignNode") and not result.error:
      snapshot(node, context)

    return result

  def no_visit_method(self, node, context):
    raise Exception(f'No visit_{type(node).__name__} method defined')

  ###################################

  def visit_BlockNode(self, node, context):
    res = RTResult()

    if node.new_scope:
      context.symbol_table.enter_scope()

    if_state = None
    index = 0

    while True:
      parsed = node.statement_at(index)
      if parsed.error: return res.failure(parsed.error)

      statement = parsed.node
      if statement is None:
        break

      context.pending_if = if_state
      value = res.register(self.visit(statement, context))
      if res.error: return res

      if_state = value if isinstance(statement, (IfNode, ElseNode)) else None
      index += 1

    if node.new_scope:
      error = context.symbol_table.exit_scope(node.pos_start, node.pos_end)
      if error: return res.failure(error)
      return res.success(None)

    # A single-statement body passes its IF outcome on to a chained ELSE
    return res.success(if_state)

  def visit_ExprNode(self, node, context):
    return ExpressionEvaluator(node.tokens, node.start, node.end, context).evaluate()

  def visit_ConditionNode(self, node, context):
    res = RTResult()
    result = res.register(ConditionEvaluator(node.tokens, node.start, node.end, context).evaluate())
    if res.error: return res
    return res.success(String.from_bool(result))

  def visit_NotNode(self, node, context):
    res = RTResult()
    value = res.register(self.visit(node.node, context))
    if res.error: return res
    return res.success(value.notted())

  def visit_PrintNode(self, node, context):
    res = RTResult()

    if node.value_node is None:
      if not context.value_stack:
        return res.failure(StackUnderflowError(
          node.pos_start, node.pos_end,
          'Nothing to print: value stack is empty'
        ))
      value = context.value_stack.pop()
    else:
      value = res.register(self.visit(node.value_node, context))
      if res.error: return res

    print(value.display(), file=context.output)
    return res.success(value)

  def visit_VarDeclNode(self, node, context):
    res = RTResult()
    var_name = node.var_name_tok.value
    value = res.register(self.visit(node.value_node, context))
    if res.error: return res

    error = context.symbol_table.declare(
      var_name, value, node.var_name_tok.pos_start, node.var_name_tok.pos_end
    )
    if error: return res.failure(error)

    context.value_stack.append(value)
    return res.success(value)

  def visit_VarAssignNode(self, node, context):
    res = RTResult()
    var_name = node.var_name_tok.value
    value = res.register(self.visit(node.value_node, context))
    if res.error: return res

    error = context.symbol_table.assign(
      var_name, value, node.var_name_tok.pos_start, node.var_name_tok.pos_end
    )
    if error: return res.failure(error)

    context.value_stack.append(value)
    return res.success(value)

  def visit_IfNode(self, node, context):
    res = RTResult()
    condition = res.register(self.visit(node.condition_node, context))
    if res.error: return res

    if condition.is_true():
      res.register(self.visit(node.body_node, context))
      if res.error: return res

    return res.success(condition.is_true())

  def visit_ElseNode(self, node, context):
    res = RTResult()
    pending_if = context.pending_if

    if pending_if is None:
      return res.failure(InvalidSyntaxError(
        node.pos_start, node.pos_end,
        'ELSE without a preceding IF'
      ))

    # The paired IF already ran its branch; any further ELSE in the chain is skipped too
    if pending_if:
      return res.success(True)

    body_state = res.register(self.visit(node.body_node, context))
    if res.error: return res
    return res.success(body_state)

  def visit_WhileNode(self, node, context):
    res = RTResult()
    iterations = 0

    while True:
      condition = res.register(self.visit(node.condition_node, context))
      if res.error: return res

      if not condition.is_true():
        break

      iterations += 1
      if context.max_loop_iterations is not None and iterations > context.max_loop_iterations:
        return res.failure(LoopLimitError(
          node.pos_start, node.pos_end,
          f'Loop exceeded {context.max_loop_iterations} iterations'
        ))

      res.register(self.visit(node.body_node, context))
      if res.error: return res

    return res.success(None)

  def visit_ScopeEnterNode(self, node, context):
    context.symbol_table.enter_scope()
    return RTResult().success(None)

  def visit_ScopeExitNode(self, node, context):
    res = RTResult()
    error = context.symbol_table.exit_scope(node.pos_start, node.pos_end)
    if error: return res.failure(error)
    return res.success(None)

#######################################
# RUN
#######################################

def run(fn, text, context=None):
  # Generate tokens
  lexer = Lexer(fn, text)
  tokens, error = lexer.make_tokens()
  if error: return None, error

  # Run program
  program = BlockNode(tokens, 0, len(tokens), new_scope=False)
  interpreter = Interpreter()
  if context is None:
    context = Context('<program>')
  result = interpreter.visit(program, context)

  return result.value, result.error

def run_web(text, max_loop_iterations=None):
  """
  Web-safe execution wrapper around run().
  Captures printed output and the execution trace. Returns
  (output, trace, error) where error is the long-form message or None.
  """
  trace = []
  buffer = io.StringIO()
  context = Context('<web>', trace=trace, max_loop_iterations=max_loop_iterations, output=buffer)

  _, error = run('<web>', text, context)

  output = buffer.getvalue()
  if error:
    return output, trace, error.as_string()
  return output, trace, None
