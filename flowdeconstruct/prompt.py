"""
Prompt builder for turning a free-text transcription into a diagram.

The prompt asks an external text-to-diagram model for a markdown document in
exactly the format `markdown.DiagramReader` imports, so its answer can be fed
straight to `deserialize`.
"""

from typing import Optional

EMPTY_TRANSCRIPTION = "(empty)"

RULES = """\
You are an assistant that specialises in mapping technical flows.
Your task is to turn the transcription below into ONE markdown file in the EXACT FlowDeconstruct format,
so that the file can be imported directly and render its boxes (nodes) and connections.

Mandatory rules:
1) Output ONLY the final markdown (no explanations, no code fences).
2) Use a level-1 HEADING (#) for the flow name.
3) Each NODE must be one line in the form: [ID] Node text
   - IDs must be simple and unique (e.g. N1, N2, N3).
   - The node text is the label of the box.
4) After the node list, add a '## Connections' section and list one connection per line in the form:
   From: <SOURCE_ID> To: <TARGET_ID> (NORMAL) Direction: FORWARD
   - Use other types (e.g. NORMAL) and directions (e.g. FORWARD, BIDIRECTIONAL) where they make sense.
   - FORWARD means source to target; BIDIRECTIONAL means both ways. (FROM_TO, TO_FROM and NONE are also accepted.)
5) Do not use extra markup (no bullets or lists), only plain lines of text.
6) Create intermediate nodes when needed to represent steps mentioned in the transcription.
7) IDs used in connections MUST exist in the node list.
8) Optional: per-node attributes may follow on the next lines (indented), such as:
   Position: 100, 100
   Size: 160, 60
   Shape: RECTANGLE|SQUARE|CIRCLE|OVAL|DIAMOND
   *Notes: Note text*
   (These attributes are optional; omit them when unsure to use the defaults.)

Reference format (summary):
# <Flow Name>
[ID] Node Text
  Position: X, Y  (optional)
  Size: Width, Height  (optional)
  Shape: RECTANGLE|SQUARE|CIRCLE|OVAL|DIAMOND  (optional)
  FillColor: #RRGGBB  (optional)
  BorderColor: #RRGGBB  (optional)
  TextColor: #RRGGBB  (optional)
  *Notes: Optional remark*  (optional)

## Connections
From: ID1 To: ID2 (NORMAL) Direction: FORWARD LineColor: #RRGGBB ArrowColor: #RRGGBB Protocol: Optional text

Steps to follow (internally, do NOT show your reasoning):
- Identify the entities, systems and steps in the transcription and create one node for each.
- Work out a logical order for the connections from the described flow (source to target).
- Use simple IDs N1..N9 and keep them consistent.
- If a protocol is mentioned (HTTP, SFTP, etc.), put it in Protocol: on the connection.
- Use Direction: BIDIRECTIONAL for two-way exchanges, FORWARD otherwise.
- If there are complex sub-flows, focus on the main flow in this markdown first.

Minimal example (do NOT copy, only follow the format):
# Integration Flow
[N1] System A
[N2] Gateway
[N3] System B

## Connections
From: N1 To: N2 (NORMAL) Direction: FORWARD
From: N2 To: N3 (NORMAL) Direction: FORWARD

"""

CLOSING = "Generate ONLY the final markdown following the format. Nothing else.\n"


def build_prompt(transcription: Optional[str]) -> str:
    """
    Build the full prompt for a free-text transcription.

    Args:
        transcription: Free text describing systems, steps and connections

    Returns:
        Prompt text with the transcription embedded between triple quotes
    """
    body = transcription.strip() if transcription else ""
    parts = [
        RULES,
        "Transcription (content to transform):\n",
        '"""\n',
        (body or EMPTY_TRANSCRIPTION) + "\n",
        '"""\n',
        CLOSING,
    ]
    return "".join(parts)
