# inbox_digest/gmail/LabelColors.py
# Gmail only accepts colors from its fixed palette.

ACTION_COLOR = {"backgroundColor": "#fb4c2f", "textColor": "#ffffff"}  # red
REFERENCE_COLOR = {"backgroundColor": "#4a86e8", "textColor": "#ffffff"}  # blue

LABEL_COLORS = {
    "Action/Urgent": ACTION_COLOR,
    "Action/To Do": {"backgroundColor": "#ffad47", "textColor": "#ffffff"},  # orange
    "Action/Waiting": {"backgroundColor": "#fad165", "textColor": "#000000"},  # yellow
    "Action/Security Alert": ACTION_COLOR,
    "Reference/Financial": {"backgroundColor": "#16a766", "textColor": "#ffffff"},  # green
}


def color_for(label_name: str) -> dict:
    if label_name in LABEL_COLORS:
        return LABEL_COLORS[label_name]
    if label_name.startswith("Action/"):
        return ACTION_COLOR
    return REFERENCE_COLOR
