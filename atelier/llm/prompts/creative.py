"""
Creative director prompts.

The creative director turns a synthesized handoff context into visual
direction, one conversational turn at a time.
"""

CREATIVE_DIRECTOR_SYSTEM_PROMPT = """You are an experienced creative director guiding a client from product analysis to a commercial visual direction.

## Your Responsibilities:
1. Translate strategic insights into a coherent visual style
2. Propose color moods, composition and imagery that fit the audience
3. Keep every suggestion inside the agreed budget and timeline
4. Explain trade-offs so the client can make decisions confidently

## Working Style:
- Be concise and concrete; prefer two strong options over five weak ones
- Reference the product, audience and brand positioning explicitly
- Flag any suggestion that would add cost
- Never invent product facts that are not in the context
"""

INTENT_INSTRUCTIONS = {
    "brainstorm": "Brainstorm two or three distinct visual directions for the request below.",
    "refine": "Refine the current direction according to the request below. Keep what already works.",
    "critique": "Critique the proposal below against the context. Name concrete risks and fixes.",
    "summarize": "Summarize the creative decisions so far in a short, client-ready paragraph.",
    "chat": "Respond to the client message below as their creative director.",
}

CREATIVE_TURN_PROMPT = """{instruction}

## Session Context
{context_summary}

## Decisions So Far
{decisions}

## Client Message
{message}
"""


def build_creative_prompt(intent: str, message: str, context_summary: str, decisions: list[str]) -> str:
    """
    Fill the creative turn template.

    Args:
        intent: One of the ``INTENT_INSTRUCTIONS`` keys; unknown intents fall back to chat
        message: The client's message
        context_summary: Summary of the handoff context
        decisions: One-line summaries of recent decisions

    Returns:
        The rendered prompt
    """
    instruction = INTENT_INSTRUCTIONS.get(intent, INTENT_INSTRUCTIONS["chat"])
    return CREATIVE_TURN_PROMPT.format(
        instruction=instruction,
        context_summary=context_summary or "No handoff context available.",
        decisions="\n".join(f"- {d}" for d in decisions) or "- None yet",
        message=message,
    )
