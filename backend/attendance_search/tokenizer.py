import re
from typing import List

from .tokens import Token, TokenType


# Pre-compiled scanners, tried in this order at every position
STUDENT_REF_RE = re.compile(r"@(\w+)")
FIELD_RE = re.compile(r'(\w+):(>=|<=|!=|>|<)?("[^"]*"|[\w\-%.:@/]+)?')
COMPARISON_RE = re.compile(r">=|<=|!=|>|<")
OPERATOR_RE = re.compile(r"(AND|OR|NOT)\b", re.IGNORECASE)
WORD_RE = re.compile(r"\w+")


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def tokenize(query: str) -> List[Token]:
    """
    Split a raw query string into tokens, always terminated by EOF.

    Characters that start none of the recognised forms are skipped
    without producing a token.
    """
    tokens: List[Token] = []
    position = 0
    length = len(query)

    while position < length:
        char = query[position]

        if char.isspace():
            position += 1
            continue

        # @student
        if char == "@":
            match = STUDENT_REF_RE.match(query, position)
            if match:
                tokens.append(Token(type=TokenType.STUDENT_REF, value=match.group(1), position=position))
                position = match.end()
                continue

        # "quoted value" (an unterminated quote falls through and is skipped)
        if char == '"':
            end_quote = query.find('"', position + 1)
            if end_quote != -1:
                tokens.append(
                    Token(type=TokenType.QUOTED_STRING, value=query[position + 1 : end_quote], position=position)
                )
                position = end_quote + 1
                continue

        # field:value, field:>value, or a bare field: with nothing after it
        match = FIELD_RE.match(query, position)
        if match:
            field, comparison, value = match.group(1), match.group(2), match.group(3)
            tokens.append(Token(type=TokenType.FIELD, value=field, position=position))
            if comparison:
                tokens.append(Token(type=TokenType.COMPARISON, value=comparison, position=match.start(2)))
            if value is not None:
                tokens.append(Token(type=TokenType.VALUE, value=_strip_quotes(value), position=match.start(3)))
            position = match.end()
            continue

        match = COMPARISON_RE.match(query, position)
        if match:
            tokens.append(Token(type=TokenType.COMPARISON, value=match.group(0), position=position))
            position = match.end()
            continue

        match = OPERATOR_RE.match(query, position)
        if match:
            tokens.append(Token(type=TokenType.OPERATOR, value=match.group(1).upper(), position=position))
            position = match.end()
            continue

        if char == "(":
            tokens.append(Token(type=TokenType.LPAREN, value="(", position=position))
            position += 1
            continue

        if char == ")":
            tokens.append(Token(type=TokenType.RPAREN, value=")", position=position))
            position += 1
            continue

        match = WORD_RE.match(query, position)
        if match:
            tokens.append(Token(type=TokenType.VALUE, value=match.group(0), position=position))
            position = match.end()
            continue

        # Unknown character: skip it
        position += 1

    tokens.append(Token(type=TokenType.EOF, value="", position=length))
    return tokens
