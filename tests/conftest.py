"""Shared Anchor sources and helpers."""

import pytest

from anchor_sentinel.analysis import build_model

PROGRAM_ID = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"

# Withdraw moves lamports to an `owner` that never has to sign
VAULT_SOURCE = '''
use anchor_lang::prelude::*;

declare_id!("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS");

#[program]
pub mod vault_program {
    use super::*;

    pub fn withdraw(ctx: Context<Withdraw>, amount: u64) -> Result<()> {
        **ctx.accounts.vault.to_account_info().try_borrow_mut_lamports()? -= amount;
        **ctx.accounts.owner.try_borrow_mut_lamports()? += amount;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Withdraw<'info> {
    #[account(mut, seeds = [b"vault"], bump)]
    pub vault: Account<'info, Vault>,
    /// CHECK: receives the withdrawn lamports
    #[account(mut)]
    pub owner: AccountInfo<'info>,
    pub system_program: Program<'info, System>,
}

#[account]
pub struct Vault {
    pub balance: u64,
}
'''

# Same program after the fix: the owner must sign
VAULT_FIXED_SOURCE = VAULT_SOURCE.replace(
    "    #[account(mut)]\n    pub owner: AccountInfo<'info>,",
    "    #[account(mut, signer)]\n    pub owner: AccountInfo<'info>,",
)

# Same program, reformatted without any semantic change
VAULT_REFORMATTED_SOURCE = '''
use anchor_lang::prelude::*;
declare_id!("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS");


#[program]
pub mod vault_program {
  use super::*;
  pub fn withdraw(
      ctx: Context<Withdraw>,
      amount: u64,
  ) -> Result<()> {
      **ctx.accounts.vault
          .to_account_info()
          .try_borrow_mut_lamports()? -= amount;
      **ctx.accounts.owner.try_borrow_mut_lamports()?
          += amount;
      Ok(())
  }
}

#[derive(Accounts)]
pub struct Withdraw<'info> {
  #[account(
      mut,
      seeds = [ b"vault" ],
      bump,
  )]
  pub vault: Account<'info, Vault>,
  /// CHECK: receives the withdrawn lamports
  #[account( mut )]
  pub owner: AccountInfo<'info>,
  pub system_program: Program<'info, System>,
}

#[account]
pub struct Vault { pub balance: u64 }
'''

# Two pool PDAs where one seed list is a prefix of the other
POOL_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_spl::token::Mint;

#[program]
pub mod amm {
    use super::*;

    pub fn create_pool(ctx: Context<CreatePool>) -> Result<()> {
        Ok(())
    }

    pub fn create_tagged_pool(ctx: Context<CreateTaggedPool>, extra: String) -> Result<()> {
        Ok(())
    }
}

#[derive(Accounts)]
pub struct CreatePool<'info> {
    #[account(init, payer = payer, space = 8 + 32, seeds = [b"pool", mint.key().as_ref()], bump)]
    pub pool: Account<'info, Pool>,
    pub mint: Account<'info, Mint>,
    #[account(mut)]
    pub payer: Signer<'info>,
    pub system_program: Program<'info, System>,
}

#[derive(Accounts)]
#[instruction(extra: String)]
pub struct CreateTaggedPool<'info> {
    #[account(init, payer = payer, space = 8 + 64, seeds = [b"pool", mint.key().as_ref(), extra.as_bytes()], bump)]
    pub pool: Account<'info, Pool>,
    pub mint: Account<'info, Mint>,
    #[account(mut)]
    pub payer: Signer<'info>,
    pub system_program: Program<'info, System>,
}

#[account]
pub struct Pool {
    pub mint: Pubkey,
}
'''

FEE_SOURCE = '''
use anchor_lang::prelude::*;

#[program]
pub mod fees {
    use super::*;

    pub fn charge(ctx: Context<Charge>, amount: u64, fee: u64) -> Result<()> {
        let total = amount + fee;
        ctx.accounts.ledger.total = total;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Charge<'info> {
    #[account(mut, has_one = authority)]
    pub ledger: Account<'info, Ledger>,
    pub authority: Signer<'info>,
}

#[account]
pub struct Ledger {
    pub authority: Pubkey,
    pub total: u64,
}
'''

FEE_CHECKED_SOURCE = FEE_SOURCE.replace(
    "let total = amount + fee;",
    "let total = amount.checked_add(fee).ok_or(ErrorCode::Overflow)?;",
)

# Triggers V001, V003 and V006 (among others) in one instruction
RELAY_SOURCE = '''
use anchor_lang::prelude::*;
use anchor_lang::solana_program::instruction::Instruction;
use anchor_lang::solana_program::program::invoke;

#[program]
pub mod relay {
    use super::*;

    pub fn relay(ctx: Context<Relay>, amount: u64, fee: u64) -> Result<()> {
        let total = amount + fee;
        let ix = Instruction {
            program_id: ctx.accounts.target_program.key(),
            accounts: vec![],
            data: total.to_le_bytes().to_vec(),
        };
        invoke(&ix, &[ctx.accounts.authority.to_account_info()])?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Relay<'info> {
    /// CHECK: meant to be the relay authority
    #[account(mut)]
    pub authority: AccountInfo<'info>,
    /// CHECK: program to forward to
    pub target_program: AccountInfo<'info>,
}
'''

# An unrecognized constraint leaves the signer question open
UNKNOWN_CONSTRAINT_SOURCE = VAULT_SOURCE.replace(
    "    #[account(mut)]\n    pub owner: AccountInfo<'info>,",
    "    #[account(mut, frobnicate)]\n    pub owner: AccountInfo<'info>,",
)

# has_one with no target cannot be normalized
MALFORMED_CONSTRAINT_SOURCE = VAULT_SOURCE.replace(
    "    #[account(mut)]\n    pub owner: AccountInfo<'info>,",
    "    #[account(mut, has_one = )]\n    pub owner: AccountInfo<'info>,",
)

UNPARSEABLE_SOURCE = "fn ((( {{{ @@@ ]]] >>> <<<"


@pytest.fixture
def vault_model():
    return build_model(VAULT_SOURCE, "programs/vault/src/lib.rs")


@pytest.fixture
def pool_model():
    return build_model(POOL_SOURCE, "programs/amm/src/lib.rs")


@pytest.fixture
def fee_model():
    return build_model(FEE_SOURCE, "programs/fees/src/lib.rs")


@pytest.fixture
def relay_model():
    return build_model(RELAY_SOURCE, "programs/relay/src/lib.rs")


@pytest.fixture
def write_program(tmp_path):
    """Write a single-file Anchor crate and return its root directory."""
    def _write(source: str, name: str = "program"):
        src = tmp_path / name / "src"
        src.mkdir(parents=True)
        (src / "lib.rs").write_text(source, encoding="utf-8")
        return tmp_path / name
    return _write
