"""Sessions, tokens and the Supabase Auth client."""
