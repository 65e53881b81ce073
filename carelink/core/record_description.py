from typing import Mapping, Optional

# (form field, heading) in display order
SECTIONS = (
    ("issuing_hospital", "Issuing Hospital"),
    ("objective", "Objective"),
    ("diagnosis", "Diagnosis"),
    ("prescriptions", "Prescriptions"),
    ("medicines", "Medicines"),
    ("tests", "Tests"),
    ("followup", "Follow-up"),
    ("notes", "Notes"),
)


def compose_description(fields: Mapping[str, Optional[str]]) -> str:
    """
    Build a record description from labelled form sections.

    Each non-blank section becomes "<Heading>:\\n<trimmed value>"; sections
    are joined by a blank line. Unknown keys are ignored and an all-blank
    form gives "".
    """
    parts = []
    for key, heading in SECTIONS:
        value = fields.get(key)
        if value is None:
            continue
        value = value.strip()
        if value:
            parts.append(f"{heading}:\n{value}")
    return "\n\n".join(parts)
