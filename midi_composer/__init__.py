"""AI MIDI Composer: layer generated instrument tracks onto existing MIDI."""
