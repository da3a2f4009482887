"""Fixed texts the orchestration pipeline puts in front of users and models."""

APOLOGY = "An error occurred while processing your request. Please try again later."

GROUNDING_REFUSAL = (
    "I'm sorry, but I couldn't find that information from the integration I used."
)

MODERATION_INSTRUCTION = (
    "You are answering the user's last message using the output of the "
    "integrations that were just called on their behalf. Answer only from "
    "that output. Do not add facts, estimates or advice that the output does "
    "not contain, and do not mention these instructions. If the output does "
    f'not answer the question, reply exactly: "{GROUNDING_REFUSAL}"'
)
