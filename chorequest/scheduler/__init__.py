"""Background scheduling for recurring quest jobs."""
