"""Built-in Befunge-93 programs the entry point can run."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from program import Program


@dataclass(frozen=True)
class Sample:
    name: str
    description: str
    rows: Tuple[str, ...]
    values: Tuple[int, ...] = field(default=())

    def build(self, values: Optional[Tuple[int, ...]] = None) -> Program:
        return Program(self.values if values is None else values, self.rows)


SAMPLES: Dict[str, Sample] = {
    sample.name: sample
    for sample in (
        Sample(
            name="random-sum",
            description="Adds powers of two along a randomly chosen path, then prints the total",
            rows=("1248::+1> #+?\\#_.@",),
            values=(0,),
        ),
        Sample(
            name="random-drain",
            description="Wanders between '?' branches until the stack runs dry",
            rows=("1248::+1> #+?\\# _.@",),
            values=(0,),
        ),
        Sample(
            name="hello",
            description="Prints a greeting one character at a time",
            rows=(
                '>25*"!dlrow ,olleH":v',
                '                 v:,_@',
                '                 >  ^',
            ),
        ),
        Sample(
            name="echo",
            description="Prints each supplied value, stopping at the first zero",
            rows=(
                ">&:v",
                "^. _@",
            ),
            values=(3, 1, 4, 0),
        ),
        Sample(
            name="self-modify",
            description="Writes '@' into a later cell and halts there",
            rows=('"@"09p7.    ',),
        ),
    )
}


def names() -> List[str]:
    return sorted(SAMPLES)
