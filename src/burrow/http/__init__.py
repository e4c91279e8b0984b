"""HTTP value types shared by both transports."""
