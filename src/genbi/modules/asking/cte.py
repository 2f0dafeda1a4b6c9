"""
GenBI Asking - CTE assembly.

Builds the SQL that previews a breakdown up to a given step: every step
before the last becomes a named CTE and the last step is the final SELECT.
"""

from collections.abc import Sequence

from genbi.adaptors.schemas import DetailStep
from genbi.exceptions import ValidationException


def construct_cte_sql(steps: Sequence[DetailStep], step_index: int | None = None) -> str:
    """
    Assemble breakdown steps into one SQL statement.

    Args:
        steps: Breakdown steps in order
        step_index: Last step to include; all steps when None

    Raises:
        ValidationException: If step_index is outside [0, len(steps))
    """
    if step_index is not None and (step_index < 0 or step_index >= len(steps)):
        raise ValidationException(f"Invalid stepIndex: {step_index}")

    sliced = list(steps) if step_index is None else list(steps[: step_index + 1])
    if not sliced:
        raise ValidationException("No breakdown steps to preview")

    if len(sliced) == 1:
        return f"-- {sliced[0].summary}\n{sliced[0].sql}"

    sql = "WITH "
    last = len(sliced) - 1
    for index, step in enumerate(sliced):
        if index == last:
            sql += f"\n-- {step.summary}\n{step.sql}"
        elif index == last - 1:
            sql += f"{step.cte_name} AS\n-- {step.summary}\n({step.sql})"
        else:
            sql += f"{step.cte_name} AS\n-- {step.summary}\n({step.sql}),"
    return sql
