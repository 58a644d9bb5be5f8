"""Welcome page shown for a fresh notebook."""

from __future__ import annotations

from folio.notebook.cell import Cell, CellKind, new_cell
from folio.notebook.document import Document

WELCOME = """# Welcome to your notebook

Code cells run in an isolated, throwaway Python process.

## Safety features

- **Sandboxed execution**: every run gets a fresh process with no file, network or host access
- **Validation**: code is scanned for dangerous patterns before it runs
- **Timeout**: each run is limited to 5 seconds
- **Console capture**: `print` and `console.log` output is recorded

## Getting started

1. Add a Markdown or Code cell
2. Write some Python in a code cell
3. Run it; the result appears in an output cell right below

The last expression of a cell is its value. `math`, `statistics`, `random`,
`json`, `re`, `itertools`, `functools`, `collections` and `datetime` are
available without importing them.
"""

WORKING_EXAMPLE = """console.log("Hello from sandboxed execution!")

numbers = [1, 2, 3, 4, 5]
doubled = [n * 2 for n in numbers]
print("Original:", numbers)
print("Doubled:", doubled)

sum(doubled)
"""

NETWORK_EXAMPLE = """# Rejected before running: network access
print("Attempting to reach the network...")
urlopen("https://api.example.com")
"""

STORAGE_EXAMPLE = """# Rejected before running: file access
with open("notes.txt", "w") as fh:
    fh.write("value")
"""

LOOP_EXAMPLE = """# Rejected before running: unconditional loop
while True:
    print("This never stops")
"""


def _code(content: str) -> Cell:
    cell = new_cell(CellKind.CODE)
    cell.content = content
    return cell


def starter_document(project_id: str, page_id: str, *, title: str = "Welcome") -> Document:
    intro = new_cell(CellKind.MARKDOWN)
    intro.content = WELCOME
    document = Document(
        project_id=project_id,
        page_id=page_id,
        title=title,
        cells=[
            intro,
            _code(WORKING_EXAMPLE),
            _code(NETWORK_EXAMPLE),
            _code(STORAGE_EXAMPLE),
            _code(LOOP_EXAMPLE),
        ],
    )
    document.renumber()
    return document
