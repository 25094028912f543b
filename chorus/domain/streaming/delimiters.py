from typing import List, Sequence, Tuple


def find_first_delimiter(buffer: str, delimiters: Sequence[str]) -> Tuple[int, int]:
    """Find the earliest occurrence of any delimiter.

    Returns (index, length) of the match, or (-1, 0) when none is present.
    On a tie the first delimiter in the list wins.
    """

    best_index = -1
    best_length = 0
    for delim in delimiters:
        if not delim:
            continue
        idx = buffer.find(delim)
        if idx != -1 and (best_index == -1 or idx < best_index):
            best_index = idx
            best_length = len(delim)
    return best_index, best_length


def split_on_delimiters(content: str, delimiters: Sequence[str]) -> List[str]:
    """Split a string on any of several delimiters"""

    results = []
    remaining = content
    while remaining:
        index, length = find_first_delimiter(remaining, delimiters)
        if index == -1:
            results.append(remaining)
            break
        results.append(remaining[:index])
        remaining = remaining[index + length:]
    return results


def partial_delimiter_length(buffer: str, delimiters: Sequence[str]) -> int:
    """Length of the longest buffer suffix that could be the start of a delimiter"""

    longest = 0
    for delim in delimiters:
        for size in range(len(delim) - 1, longest, -1):
            if buffer.endswith(delim[:size]):
                longest = size
                break
    return longest
