"""Per-call bridge between Twilio Media Streams and ElevenLabs Conversational AI.

The coordinator owns one telephony channel and one conversation channel per
call and relays audio frames between them without transcoding or buffering.
"""
