"""
Registration Module

Conversation context, state machine, reconciliation and the engine that
runs one registration turn. Import from the submodules directly; the
matching layer depends on the context types defined here, so this package
does not re-export the engine.

Usage:
    from app.core.registration.engine import get_registration_engine

    engine = get_registration_engine()
    result = await engine.process_turn(
        conversation_id="3f1c...",
        message="Emma is 5 and we like weekend mornings",
    )
    print(result.message)
    print(result.next_state)  # ConversationState.SHOWING_RECOMMENDATIONS
"""
