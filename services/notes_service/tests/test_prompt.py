from services.notes_service.src.context import TRUNCATION_MARKER, assemble_context
from services.notes_service.src.prompt import build_prompt

def test_prompt_is_byte_identical_for_same_context(jane, transcript_factory):
    block = assemble_context(jane, [transcript_factory(jane.id, hours_after=h) for h in range(3)])

    first = build_prompt(block, jane.name)
    second = build_prompt(block, jane.name)

    assert first.instructions == second.instructions
    assert first.content == second.content

def test_prompt_orders_soap_sections_as_markdown_headings(jane):
    prompt = build_prompt(assemble_context(jane, []), jane.name)
    text = prompt.instructions

    positions = [text.index(h) for h in ("## Subjective", "## Objective", "## Assessment", "## Plan")]
    assert positions == sorted(positions)
    assert "Markdown" in text
    assert "Use only facts present" in text

def test_prompt_embeds_context_blocks_and_client_name(jane, transcript_factory):
    block = assemble_context(jane, [transcript_factory(jane.id, content="Slept six hours most nights.")])
    prompt = build_prompt(block, jane.name)

    assert "CLIENT DEMOGRAPHICS:\nClient Name: Jane Doe" in prompt.instructions
    assert "SESSION TRANSCRIPTS:\n--- Transcript 1" in prompt.instructions
    assert "Slept six hours most nights." in prompt.instructions
    assert prompt.content == "Generate a SOAP note for the client Jane Doe based on the provided context."

def test_braces_in_transcripts_do_not_break_the_template(jane, transcript_factory):
    block = assemble_context(jane, [transcript_factory(jane.id, content="Client drew {shapes} and {context}.")])
    prompt = build_prompt(block, "A {weird} name")

    assert "Client drew {shapes} and {context}." in prompt.instructions
    assert prompt.content.endswith("A {weird} name based on the provided context.")

def test_truncation_marker_reaches_the_model(jane, transcript_factory):
    block = assemble_context(jane, [transcript_factory(jane.id, content="w" * 500)], char_budget=100)
    prompt = build_prompt(block, jane.name)
    assert TRUNCATION_MARKER in prompt.instructions
