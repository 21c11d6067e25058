"""markdown-it tokenization and token-to-Block mapping"""

from markdown_it import MarkdownIt

from wordmd.core.models import Block, BlockKind, Inline, InlineKind


INLINE_OPEN_MAP: dict[str, InlineKind] = {
    'em_open':     InlineKind.emphasis,
    'strong_open': InlineKind.strong,
}


def make_parser(preset: str = 'commonmark') -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name."""
    return MarkdownIt(preset, options_update={"linkify": False})


def clamp_heading_level(level: int) -> int:
    """Clamp heading levels into the 1-6 range Word has styles for."""
    return max(1, min(6, level))


def _close_index(tokens: list, i: int) -> int:
    """Index of the token closing tokens[i] (i itself for self-contained tokens)."""
    depth = 0
    for j in range(i, len(tokens)):
        depth += tokens[j].nesting
        if depth <= 0:
            return j
    return len(tokens) - 1


def _heading_level(token) -> int:
    if token.tag and token.tag[0] == 'h' and token.tag[1:].isdigit():
        return clamp_heading_level(int(token.tag[1:]))
    return 1


def parse_inlines(children: list) -> list[Inline]:
    """Fold a flat inline token stream into a nested Inline tree."""
    root: list[Inline] = []
    stack: list[list[Inline]] = [root]

    for tok in children or []:
        current = stack[-1]
        if tok.nesting == 1:
            kind = INLINE_OPEN_MAP.get(tok.type, InlineKind.unsupported)
            span = Inline(kind=kind, source=tok.type)
            current.append(span)
            stack.append(span.children)
        elif tok.nesting == -1:
            if len(stack) > 1:
                stack.pop()
        elif tok.type == 'text':
            current.append(Inline(kind=InlineKind.text, text=tok.content, source=tok.type))
        elif tok.type == 'softbreak':
            current.append(Inline(kind=InlineKind.text, text=" ", source=tok.type))
        elif tok.type == 'hardbreak':
            current.append(Inline(kind=InlineKind.line_break, source=tok.type))
        elif tok.type == 'code_inline':
            current.append(Inline(kind=InlineKind.code, text=tok.content, source=tok.type))
        else:
            current.append(Inline(kind=InlineKind.unsupported, text=tok.content, source=tok.type))
    return root


def _inline_after(tokens: list, i: int) -> list[Inline]:
    """Inlines of the `inline` token following a heading/paragraph open at i."""
    if i + 1 < len(tokens) and tokens[i + 1].type == 'inline':
        return parse_inlines(tokens[i + 1].children)
    return []


def _list_items(tokens: list, start: int, end: int, ordered: bool) -> list[Block]:
    """One Block per item of the list spanning tokens[start:end+1].

    Only the first paragraph of each item is kept; nested lists, code and
    other blocks inside an item are dropped.
    """
    items: list[Block] = []
    i = start + 1
    while i < end:
        tok = tokens[i]
        if tok.type != 'list_item_open':
            i += 1
            continue
        item_end = _close_index(tokens, i)
        inlines: list[Inline] = []
        for j in range(i + 1, item_end):
            if tokens[j].type == 'paragraph_open' and tokens[j].level == tok.level + 1:
                inlines = _inline_after(tokens, j)
                break
        items.append(Block(kind=BlockKind.list_item, inlines=inlines, ordered=ordered, source=tok.type))
        i = item_end + 1
    return items


def tokens_to_blocks(tokens: list) -> list[Block]:
    """Convert a top-level markdown-it token stream into ordered Blocks."""
    blocks: list[Block] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        end = _close_index(tokens, i)

        if tok.type == 'heading_open':
            blocks.append(Block(
                kind=BlockKind.heading,
                level=_heading_level(tok),
                inlines=_inline_after(tokens, i),
                source=tok.type,
            ))
        elif tok.type == 'paragraph_open':
            blocks.append(Block(kind=BlockKind.paragraph, inlines=_inline_after(tokens, i), source=tok.type))
        elif tok.type in ('bullet_list_open', 'ordered_list_open'):
            blocks.extend(_list_items(tokens, i, end, ordered=tok.type == 'ordered_list_open'))
        elif tok.type in ('fence', 'code_block'):
            text = tok.content[:-1] if tok.content.endswith("\n") else tok.content
            blocks.append(Block(kind=BlockKind.code, text=text, source=tok.type))
        elif tok.type == 'hr':
            blocks.append(Block(kind=BlockKind.thematic_break, source=tok.type))
        else:
            blocks.append(Block(kind=BlockKind.unsupported, text=tok.content, source=tok.type))

        i = end + 1
    return blocks


def parse_markdown(markdown: str, preset: str = 'commonmark') -> list[Block]:
    """Tokenize markdown and map it to the Block model."""
    return tokens_to_blocks(make_parser(preset).parse(markdown))
