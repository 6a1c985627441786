"""Shape checks shared by both matching entry points."""

from typing import Optional, Sequence, Tuple

from .errors import DestinationShapeError, RankMismatchError, TemplateTooLargeError

MAX_RANK = 64

Shape = Tuple[int, ...]


def validate_shapes(
    source_shape: Sequence[int],
    template_shape: Sequence[int],
    dest_shape: Optional[Sequence[int]] = None,
) -> Shape:
    """Check that ``template_shape`` fits inside ``source_shape``.

    Returns the result shape ``source - template + 1`` per axis. When
    ``dest_shape`` is given it must equal that result shape exactly.
    Raises a ``ShapeMismatchError`` subclass naming the offending axis.
    """
    source_shape = tuple(int(n) for n in source_shape)
    template_shape = tuple(int(n) for n in template_shape)

    rank = len(source_shape)
    if not 1 <= rank <= MAX_RANK:
        raise RankMismatchError(
            f"source rank {rank} outside supported range 1..{MAX_RANK}",
            expected=MAX_RANK,
            actual=rank,
        )
    if len(template_shape) != rank:
        raise RankMismatchError(
            f"template rank {len(template_shape)} does not match source rank {rank}",
            expected=rank,
            actual=len(template_shape),
        )

    result = []
    for axis, (s, t) in enumerate(zip(source_shape, template_shape)):
        if t < 1:
            raise TemplateTooLargeError(
                f"template axis {axis} is empty (extent {t})",
                axis=axis,
                expected=1,
                actual=t,
            )
        if t > s:
            raise TemplateTooLargeError(
                f"template axis {axis} has extent {t} > source extent {s}",
                axis=axis,
                expected=s,
                actual=t,
            )
        result.append(s - t + 1)
    result_shape = tuple(result)

    if dest_shape is not None:
        dest_shape = tuple(int(n) for n in dest_shape)
        if len(dest_shape) != rank:
            raise DestinationShapeError(
                f"destination rank {len(dest_shape)} does not match result rank {rank}",
                expected=rank,
                actual=len(dest_shape),
            )
        for axis, (d, r) in enumerate(zip(dest_shape, result_shape)):
            if d != r:
                raise DestinationShapeError(
                    f"destination axis {axis} has extent {d}, expected {r} "
                    f"(result shape {result_shape})",
                    axis=axis,
                    expected=r,
                    actual=d,
                )

    return result_shape


def result_shape(source_shape: Sequence[int], template_shape: Sequence[int]) -> Shape:
    return validate_shapes(source_shape, template_shape)
