"""Knowledge base chatbot backend."""
