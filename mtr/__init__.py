"""MTR: multi-target embedded Rust workspaces with HAL compatibility analysis"""
