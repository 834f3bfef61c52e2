"""whatsrelay HTTP application."""
