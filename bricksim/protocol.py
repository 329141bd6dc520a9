"""
Client-Simulator Communication Protocol Definition

Line protocol, newline terminated, space delimited ASCII:
- Client -> Simulator: "<VERB> <op> [args...]"
- Simulator -> Client: "RESP <value>" or "RESP ERROR" (GET commands only)

SET commands are fire-and-forget; a client never reads a reply for them.
Lines with fewer than two tokens and unknown verb/op pairs are dropped.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

# ============================================================================
# Verbs
# ============================================================================
VERB_GET = "GET"
VERB_SET = "SET"

# ============================================================================
# Operations
# ============================================================================
OP_INPUT_READ_SI = "inputReadSI"
OP_MOTOR_BUSY = "motorBusy"
OP_MOTOR_GET_COUNT = "motorGetCount"

OP_MOTOR_STOP = "motorStop"
OP_MOTOR_POWER = "motorPower"
OP_MOTOR_START = "motorStart"
OP_MOTOR_STEP_SPEED = "motorStepSpeed"
OP_MOTOR_CLR_COUNT = "motorClrCount"
OP_SIMULATE_CLUTCH = "simulateClutch"
OP_MOTOR_RANGE = "motorRange"
OP_DRIVE_GEAR_RATIO = "driveGearRatio"
OP_EFFECTIVE_WHEELBASE = "effectiveWheelbase"
OP_END = "end"
OP_DISCONNECT = "disconnect"

# ============================================================================
# Argument counts (after verb and op)
# ============================================================================
# motorStop and motorStepSpeed take an optional trailing brake flag
ARG_COUNTS = {
    (VERB_GET, OP_INPUT_READ_SI): (2,),          # port, mode
    (VERB_GET, OP_MOTOR_BUSY): (1,),             # nos
    (VERB_GET, OP_MOTOR_GET_COUNT): (1,),        # motor index
    (VERB_SET, OP_MOTOR_STOP): (1, 2),           # nos [, brake]
    (VERB_SET, OP_MOTOR_POWER): (2,),            # nos, power
    (VERB_SET, OP_MOTOR_START): (1,),            # nos
    (VERB_SET, OP_MOTOR_STEP_SPEED): (5, 6),     # nos, power, s1, s2, s3 [, brake]
    (VERB_SET, OP_MOTOR_CLR_COUNT): (1,),        # nos
    (VERB_SET, OP_SIMULATE_CLUTCH): (2,),        # has_clutch, direction
    (VERB_SET, OP_MOTOR_RANGE): (3,),            # motor index, min, max
    (VERB_SET, OP_DRIVE_GEAR_RATIO): (2,),       # numerator, denominator
    (VERB_SET, OP_EFFECTIVE_WHEELBASE): (1,),    # wheelbase
    (VERB_SET, OP_END): (0,),
    (VERB_SET, OP_DISCONNECT): (0,),
}

TERMINATING_OPS = (OP_END, OP_DISCONNECT)

# ============================================================================
# Responses
# ============================================================================
RESP_PREFIX = "RESP"
RESP_ERROR = "RESP ERROR"
LINE_TERMINATOR = "\n"
ENCODING = "ascii"


class ProtocolError(ValueError):
    """Malformed command: wrong argument count or a non-numeric or non-finite argument."""


@dataclass(frozen=True)
class Command:
    """A decoded command line."""
    verb: str
    op: str
    args: Tuple[float, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.verb, self.op)

    @property
    def terminates(self) -> bool:
        return self.verb == VERB_SET and self.op in TERMINATING_OPS

    def __str__(self) -> str:
        return " ".join([self.verb, self.op] + [format_number(a) for a in self.args])


def parse_line(line: str) -> Optional[Command]:
    """
    Decode one command line.

    Args:
        line: Received text, with or without the line terminator

    Returns:
        Command, or None for a line that is silently dropped (fewer than two
        tokens, unknown verb or op)

    Raises:
        ProtocolError: Known command with the wrong number of arguments or a
            non-numeric or non-finite argument
    """
    tokens = line.split()
    if len(tokens) < 2:
        return None

    verb, op, raw_args = tokens[0], tokens[1], tokens[2:]
    counts = ARG_COUNTS.get((verb, op))
    if counts is None:
        return None
    if len(raw_args) not in counts:
        raise ProtocolError(f"{verb} {op} expects {' or '.join(map(str, counts))} "
                            f"arguments, got {len(raw_args)}")

    try:
        args = tuple(float(a) for a in raw_args)
    except ValueError:
        raise ProtocolError(f"{verb} {op}: non-numeric argument in {raw_args}") from None
    if not all(math.isfinite(a) for a in args):
        raise ProtocolError(f"{verb} {op}: non-finite argument in {raw_args}")
    return Command(verb, op, args)


def format_number(value: float) -> str:
    """Shortest text for a command argument; integral values print without a point."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def to_int32(value: float) -> int:
    """Round to nearest and saturate to the signed 32-bit range."""
    return max(-2 ** 31, min(2 ** 31 - 1, int(round(value))))


def encode_float(value: float) -> str:
    return f"{RESP_PREFIX} {value:f}"


def encode_int(value: float) -> str:
    return f"{RESP_PREFIX} {to_int32(value)}"


def encode_error() -> str:
    return RESP_ERROR


def parse_response(line: str) -> float:
    """
    Decode a response line into its value.

    Raises:
        ProtocolError: Not a RESP line, or an ERROR response
    """
    tokens = line.split()
    if len(tokens) != 2 or tokens[0] != RESP_PREFIX:
        raise ProtocolError(f"malformed response: {line!r}")
    if tokens[1] == "ERROR":
        raise ProtocolError("simulator returned ERROR")
    try:
        return float(tokens[1])
    except ValueError:
        raise ProtocolError(f"malformed response value: {line!r}") from None
