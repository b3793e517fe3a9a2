"""AdPilot chat: conversational turn orchestration for the campaign builder."""
