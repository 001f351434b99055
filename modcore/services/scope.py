from __future__ import annotations

from modcore.core.errors import NotFoundError
from modcore.domain.scope import Scope, ScopeChain, ScopeKind
from modcore.services.content import ContentDirectory


async def resolve_ancestors(content: ContentDirectory, scope: Scope) -> ScopeChain:
    """Return ``scope`` followed by every broader scope, ending with Global.

    Walks Space -> Hub -> Community through the content collaborator, so the
    chain is at most four entries long. Raises :class:`NotFoundError` when a
    referenced space, hub or community does not exist.
    """
    chain: list[Scope] = []
    current = scope
    while not current.is_global:
        chain.append(current)
        if current.kind is ScopeKind.space:
            hub_id = await content.get_space_hub_id(current.id)
            if hub_id is None:
                raise NotFoundError(f"Space {current.id} not found")
            current = Scope.hub(hub_id)
        elif current.kind is ScopeKind.hub:
            community_id = await content.get_hub_community_id(current.id)
            if community_id is None:
                raise NotFoundError(f"Hub {current.id} not found")
            current = Scope.community(community_id)
        else:
            if not await content.community_exists(current.id):
                raise NotFoundError(f"Community {current.id} not found")
            current = Scope.global_scope()
    chain.append(current)
    return ScopeChain(tuple(chain))


async def try_resolve_ancestors(content: ContentDirectory, scope: Scope) -> ScopeChain | None:
    # A vanished scope resolves to None instead of raising.
    try:
        return await resolve_ancestors(content, scope)
    except NotFoundError:
        return None


async def resolve_or_detached(content: ContentDirectory, scope: Scope) -> ScopeChain:
    # Existing records may point at deleted content; fall back to the scope itself plus Global.
    chain = await try_resolve_ancestors(content, scope)
    if chain is not None:
        return chain
    if scope.is_global:
        return ScopeChain((scope,))
    return ScopeChain((scope, Scope.global_scope()))


def global_chain() -> ScopeChain:
    return ScopeChain((Scope.global_scope(),))


async def scope_for_discussion(content: ContentDirectory, discussion_id: str) -> Scope:
    space_id = await content.get_discussion_space_id(discussion_id)
    if space_id is None:
        raise NotFoundError(f"Discussion {discussion_id} not found")
    return Scope.space(space_id)


async def scope_for_post(content: ContentDirectory, post_id: str) -> Scope:
    discussion_id = await content.get_post_discussion_id(post_id)
    if discussion_id is None:
        raise NotFoundError(f"Post {post_id} not found")
    return await scope_for_discussion(content, discussion_id)
