"Hope Institute portal backend."
